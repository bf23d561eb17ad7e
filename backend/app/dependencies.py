from fastapi import Request

from app.services.trip_gateway import TripGateway


def get_gateway(request: Request) -> TripGateway:
    return request.app.state.gateway
