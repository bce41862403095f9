"""Router package exports."""
from . import admin, auth, documents, sellers

__all__ = [
	"admin",
	"auth",
	"documents",
	"sellers",
]
