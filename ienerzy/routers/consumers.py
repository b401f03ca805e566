from fastapi import APIRouter, Depends, Request

from ienerzy.routers.deps import get_consumer_principal, rate_limit, require_roles
from ienerzy.schemas.consumers import ConsumerResponse
from ienerzy.services.access import check_consumer_access
from ienerzy.services.auth import Principal
from ienerzy.services.errors import NotFoundError
from ienerzy.services.rate_limit import API

router = APIRouter(prefix="/consumers", tags=["consumers"])


def _to_response(consumer) -> ConsumerResponse:
    return ConsumerResponse(
        id=consumer.id,
        name=consumer.name,
        phone=consumer.phone,
        kyc_status=consumer.kyc_status,
        dealer_id=consumer.dealer_id,
    )


@router.get(
    "/me",
    response_model=ConsumerResponse,
    dependencies=[Depends(rate_limit(API))],
)
def get_own_profile(
    request: Request,
    principal: Principal = Depends(get_consumer_principal),
) -> ConsumerResponse:
    consumer = request.app.state.directory.get_consumer(principal.user_id)
    if consumer is None:
        raise NotFoundError("Consumer not found")
    return _to_response(consumer)


@router.get(
    "/{consumer_id}",
    response_model=ConsumerResponse,
    dependencies=[Depends(rate_limit(API))],
)
def get_consumer(
    consumer_id: int,
    request: Request,
    principal: Principal = Depends(require_roles("admin", "dealer", "consumer")),
) -> ConsumerResponse:
    consumer = check_consumer_access(
        request.app.state.directory, principal, consumer_id
    )
    return _to_response(consumer)
