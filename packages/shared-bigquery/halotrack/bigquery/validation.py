"""
QueryValidator - SQL query validation for tenant-scoped BigQuery access.

Blocks:
- DROP, DELETE, TRUNCATE, UPDATE, INSERT, MERGE (unless explicitly allowed)
- DDL and permission statements
- References to another client's dataset
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ValidationSeverity(str, Enum):
    """Severity level for validation issues."""

    ERROR = "error"  # Query blocked
    WARNING = "warning"  # Query allowed with warning


@dataclass
class ValidationResult:
    """Result of query validation."""

    is_valid: bool
    severity: ValidationSeverity | None = None
    message: str | None = None


class QueryValidator:
    """
    Validates SQL queries for safety.

    Prevents:
    - Data modification (DELETE, UPDATE, INSERT, MERGE) outside the stores
    - Schema changes (DROP, CREATE, ALTER, TRUNCATE)
    - Cross-tenant reads (halotrack_<other client> datasets)
    """

    # Blocked unless allow_writes
    WRITE_PATTERNS = [
        (r"\bDELETE\s+", "DELETE statements are not allowed"),
        (r"\bUPDATE\s+", "UPDATE statements are not allowed"),
        (r"\bINSERT\s+", "INSERT statements are not allowed"),
        (r"\bMERGE\s+", "MERGE statements are not allowed"),
    ]

    # Always blocked
    BLOCKED_PATTERNS = [
        (r"\bDROP\s+", "DROP statements are not allowed"),
        (r"\bTRUNCATE\s+", "TRUNCATE statements are not allowed"),
        (r"\bCREATE\s+", "CREATE statements are not allowed"),
        (r"\bALTER\s+", "ALTER statements are not allowed"),
        (r"\bGRANT\s+", "GRANT statements are not allowed"),
        (r"\bREVOKE\s+", "REVOKE statements are not allowed"),
    ]

    WARNING_PATTERNS = [
        (r"SELECT\s+\*", "Consider specifying columns instead of SELECT *"),
    ]

    DATASET_PATTERN = re.compile(r"\bhalotrack_[A-Za-z0-9_]+", re.IGNORECASE)
    CLIENT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]{2,31}$")

    @classmethod
    def validate(cls, sql: str, allow_writes: bool = False) -> ValidationResult:
        """
        Validate a SQL query for safety.

        Args:
            sql: SQL query string
            allow_writes: If True, allow DML (store implementations only)

        Returns:
            ValidationResult with status and message

        Raises:
            ValueError: If query contains blocked patterns
        """
        patterns = cls.BLOCKED_PATTERNS if allow_writes else cls.WRITE_PATTERNS + cls.BLOCKED_PATTERNS
        for pattern, message in patterns:
            if re.search(pattern, sql, re.IGNORECASE):
                raise ValueError(f"Query validation failed: {message}")

        warnings = [
            message for pattern, message in cls.WARNING_PATTERNS if re.search(pattern, sql, re.IGNORECASE)
        ]
        if not allow_writes and re.search(r"\bSELECT\b", sql, re.IGNORECASE) and not re.search(
            r"\bLIMIT\s+\d+", sql, re.IGNORECASE
        ):
            warnings.append("Consider adding a LIMIT clause to prevent large result sets")

        if warnings:
            return ValidationResult(
                is_valid=True,
                severity=ValidationSeverity.WARNING,
                message="; ".join(warnings),
            )

        return ValidationResult(is_valid=True)

    @classmethod
    def validate_tenant_scope(cls, sql: str, dataset_id: str) -> None:
        """
        Ensure every halotrack_* dataset referenced is the client's own.

        Raises:
            ValueError: If the query names another client's dataset
        """
        for match in cls.DATASET_PATTERN.findall(sql):
            if match.lower() != dataset_id.lower():
                raise ValueError(f"Query validation failed: dataset {match} is outside {dataset_id}")

    @classmethod
    def validate_client_id(cls, client_id: str) -> str:
        """
        Validate a client id, which becomes part of a dataset name.

        Raises:
            ValueError: If the id is not 3-32 lowercase letters, digits or
                underscores starting with a letter
        """
        if not isinstance(client_id, str) or not cls.CLIENT_ID_PATTERN.match(client_id):
            raise ValueError(f"Invalid client id: {client_id!r}")
        return client_id

    @classmethod
    def sanitize_identifier(cls, identifier: str) -> str:
        """
        Sanitize a table/column identifier to prevent injection.

        Raises:
            ValueError: If identifier contains invalid characters
        """
        # Only allow alphanumeric, underscore, and hyphen
        if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_-]*$", identifier):
            raise ValueError(f"Invalid identifier: {identifier}")

        return identifier
