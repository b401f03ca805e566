from ienerzy.services.errors import AuthError, ForbiddenError, NotFoundError
from ienerzy.services.users import IdentityDirectory, ConsumerRecord


def require_role(principal, allowed_roles) -> None:
    if principal is None:
        raise AuthError("Authentication required")
    if principal.role not in allowed_roles:
        raise ForbiddenError("Insufficient permissions")


def require_consumer(principal) -> None:
    if principal is None:
        raise AuthError("Authentication required")
    if not principal.is_consumer:
        raise ForbiddenError("Consumer access required")


def check_consumer_access(
    directory: IdentityDirectory, principal, consumer_id: int
) -> ConsumerRecord:
    consumer = directory.get_consumer(consumer_id)
    if consumer is None:
        raise NotFoundError("Resource not found")
    if principal.role == "admin":
        return consumer
    if principal.is_consumer:
        if consumer.id != principal.user_id:
            raise ForbiddenError("Access denied")
        return consumer
    if principal.role == "dealer" and consumer.dealer_id != principal.user_id:
        raise ForbiddenError("Access denied")
    return consumer
