from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.dependencies import get_gateway
from app.services.trip_gateway import TripGateway

router = APIRouter()


@router.options("/generateTrip")
async def generate_trip_preflight():
    return Response(status_code=200)


@router.post("/generateTrip")
async def generate_trip(request: Request, gateway: TripGateway = Depends(get_gateway)):
    """Generate an itinerary for the authenticated caller.

    The body is read here but only inspected after the caller is authenticated,
    so a malformed body from an anonymous caller still gets a 401.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    result = await gateway.generate_trip(request.headers.get("Authorization"), payload)
    return JSONResponse(content=result.model_dump(by_alias=True, mode="json"))
