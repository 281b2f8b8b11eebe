from .client import SalesforceClient
from .credential_cache import Credential, CredentialCache
from .schema_resolver import SchemaFieldMap, SchemaResolver

__all__ = [
    "SalesforceClient",
    "Credential",
    "CredentialCache",
    "SchemaFieldMap",
    "SchemaResolver",
]
