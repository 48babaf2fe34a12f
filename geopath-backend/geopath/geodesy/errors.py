from __future__ import annotations


class FactoryException(Exception):
    """Any failure to build an object from the registry or from text."""


class NoSuchAuthorityCodeException(FactoryException):
    def __init__(self, message: str, authority: str | None, code: str):
        super().__init__(message)
        self.authority = authority
        self.code = code

    def __str__(self) -> str:
        return f"{self.args[0]}: {self.authority}:{self.code}"


class InvalidOperationError(FactoryException):
    """Operation parameters outside their domain, or a method with no kernel."""


class CoordinateTransformOutsideDomainError(Exception):
    """A numeric kernel received a coordinate outside its valid domain."""


__all__ = [
    "FactoryException",
    "NoSuchAuthorityCodeException",
    "InvalidOperationError",
    "CoordinateTransformOutsideDomainError",
]
