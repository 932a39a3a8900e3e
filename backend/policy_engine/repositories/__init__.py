from .base import PolicyStore, format_policy_code
from .memory import InMemoryPolicyStore
from .policy_repository import SqlAlchemyPolicyStore

__all__ = [
    "PolicyStore",
    "InMemoryPolicyStore",
    "SqlAlchemyPolicyStore",
    "format_policy_code",
]
