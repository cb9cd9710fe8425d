"""
Audit logging for mutating service operations.

`@audited` runs after the wrapped operation has committed and appends an
AuditLog row describing WHO did WHAT to WHICH entity. The audit trail is
independent of the client timeline.
"""

import enum
import functools
import inspect
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from ledgercrm.core.logging import get_logger
from ledgercrm.models.audit_log import AuditLog
from ledgercrm.schemas.common import Actor

logger = get_logger(__name__)


def _safe_value(value: Any) -> Any:
    """Reduce an argument to something JSON can store."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (UUID, date, datetime)):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    return repr(value)


def _resolve_entity_id(result: Any, arguments: Dict[str, Any], id_arg: Optional[str]) -> Optional[str]:
    if id_arg and arguments.get(id_arg) is not None:
        return str(arguments[id_arg])
    for attr in ("id", "record_id"):
        value = getattr(result, attr, None)
        if value is not None:
            return str(value)
    return None


def audited(action: str, entity_type: str, id_arg: Optional[str] = None) -> Callable:
    """
    Decorate an async service method so each successful call leaves an audit entry.

    The method must belong to a service with a `session` attribute and take an
    `actor` argument. The entity id is read from `id_arg` when given, else from
    the result's `id` (or `record_id`).

    Args:
        action: Verb recorded in the log, e.g. "CREATE" or "VALIDATE"
        entity_type: Kind of entity the action applies to
        id_arg: Name of the argument carrying the entity id
    """

    def decorator(fn: Callable) -> Callable:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            result = await fn(self, *args, **kwargs)

            bound = signature.bind(self, *args, **kwargs)
            bound.apply_defaults()
            arguments = dict(bound.arguments)
            arguments.pop("self", None)
            actor: Optional[Actor] = arguments.pop("actor", None)

            entry = AuditLog(
                organization_id=actor.organization_id if actor else None,
                actor_id=actor.user_id if actor else None,
                action=action,
                entity_type=entity_type,
                entity_id=_resolve_entity_id(result, arguments, id_arg),
                details={
                    "operation": fn.__name__,
                    "arguments": {name: _safe_value(value) for name, value in arguments.items()},
                },
            )
            try:
                self.session.add(entry)
                await self.session.commit()
            except SQLAlchemyError:
                # The operation itself is already committed
                await self.session.rollback()
                logger.exception(
                    f"Failed to write audit entry for {entity_type}.{action}",
                    extra={"operation": fn.__name__, "entity_id": entry.entity_id},
                )
            return result

        return wrapper

    return decorator
