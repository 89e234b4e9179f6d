from fastapi import APIRouter

from . import queue

router = APIRouter()

router.include_router(queue.router)
