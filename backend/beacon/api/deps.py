from fastapi import Request

from ..core.delivery_queue import DeliveryQueue


# FastAPI dependency; the queue is built once in main and kept on app.state
def get_delivery_queue(request: Request) -> DeliveryQueue:
    return request.app.state.delivery_queue
