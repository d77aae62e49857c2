from fastapi import APIRouter
from clinicflow.api.v1.doctors import routes as doctors
from clinicflow.api.v1.appointments import routes as appointments
from clinicflow.api.v1.queue import routes as queue
from clinicflow.api.v1.public import routes as public

api_router = APIRouter()
# Public routers first so their paths are matched before /{id} routes
api_router.include_router(public.appointments_router, prefix="/appointments/public", tags=["public"])
api_router.include_router(public.queue_router, prefix="/queue/public", tags=["public"])
api_router.include_router(doctors.router, prefix="/doctors", tags=["doctors"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
