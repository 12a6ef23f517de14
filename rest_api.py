import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from config import APP_VERSION, load_settings
from errors import (
    ConstraintViolationError,
    InvalidIdentifierError,
    ReferentialIntegrityError,
    StorageUnavailableError,
    check_id,
)
from settings_schema import AppSettings
from storage import Storage, create_storage

logger = logging.getLogger(__name__)

DEFAULT_WORKOUT_NAME = "Workout"


class ReorderRequest(BaseModel):
    order: List[int]


class FitnessAPI:
    """Provides REST endpoints for the fitness tracker."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        settings: Optional[AppSettings] = None,
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.settings = settings or load_settings(yaml_path)
        self.storage = storage or create_storage(self.settings)
        self.app = FastAPI(
            title="Fitness Tracker API",
            description="REST API for body measurements, workout programs and logs",
            version=APP_VERSION,
        )
        self._setup_error_handlers()
        self._setup_routes()

    def current_user(self, x_user_id: Optional[int] = Header(None)) -> int:
        if x_user_id is None:
            return self.settings.default_user_id
        return check_id(x_user_id)

    def _setup_error_handlers(self) -> None:
        def error(status: int, message: str, errors=None) -> JSONResponse:
            body = {"message": message}
            if errors is not None:
                body["errors"] = jsonable_encoder(errors)
            return JSONResponse(status_code=status, content=body)

        @self.app.exception_handler(HTTPException)
        async def http_error(request: Request, exc: HTTPException):
            return error(exc.status_code, str(exc.detail))

        @self.app.exception_handler(RequestValidationError)
        async def request_invalid(request: Request, exc: RequestValidationError):
            return error(400, "Invalid request data", exc.errors())

        @self.app.exception_handler(ValidationError)
        async def payload_invalid(request: Request, exc: ValidationError):
            return error(400, "Invalid data", exc.errors(include_url=False, include_context=False))

        @self.app.exception_handler(InvalidIdentifierError)
        async def bad_identifier(request: Request, exc: InvalidIdentifierError):
            return error(400, str(exc))

        @self.app.exception_handler(ReferentialIntegrityError)
        async def dangling_reference(request: Request, exc: ReferentialIntegrityError):
            return error(409, str(exc))

        @self.app.exception_handler(ConstraintViolationError)
        async def constraint_violated(request: Request, exc: ConstraintViolationError):
            return error(409, str(exc))

        @self.app.exception_handler(StorageUnavailableError)
        async def storage_down(request: Request, exc: StorageUnavailableError):
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
            return error(503, "Storage unavailable")

    async def _with_program_name(self, log: dict) -> dict:
        program = await self.storage.get_workout_program(log["workoutProgramId"])
        return {**log, "name": program["name"] if program else DEFAULT_WORKOUT_NAME}

    def _setup_routes(self) -> None:
        prefix = self.settings.api_prefix.rstrip("/")
        storage = self.storage
        user = Depends(self.current_user)

        measurements_router = APIRouter(prefix=f"{prefix}/measurements", tags=["Measurements"])
        exercises_router = APIRouter(prefix=f"{prefix}/exercises", tags=["Exercises"])
        programs_router = APIRouter(prefix=f"{prefix}/workout-programs", tags=["Workout Programs"])
        links_router = APIRouter(prefix=f"{prefix}/workout-exercises", tags=["Workout Programs"])
        workout_logs_router = APIRouter(prefix=f"{prefix}/workout-logs", tags=["Workout Logs"])
        exercise_logs_router = APIRouter(prefix=f"{prefix}/exercise-logs", tags=["Workout Logs"])
        photos_router = APIRouter(prefix=f"{prefix}/progress-photos", tags=["Progress Photos"])

        @self.app.get("/health")
        def health():
            return {"status": "ok", "version": APP_VERSION}

        # measurements

        @measurements_router.get("")
        async def list_measurements(type: Optional[str] = None, user_id: int = user):
            return await storage.list_measurements_with_change(user_id, type)

        @measurements_router.get("/latest")
        async def latest_measurements(user_id: int = user):
            return await storage.latest_measurements(user_id)

        @measurements_router.post("", status_code=201)
        async def create_measurement(payload: dict = Body(...), user_id: int = user):
            return await storage.create_measurement({**payload, "userId": user_id})

        @measurements_router.get("/{measurement_id}")
        async def get_measurement(measurement_id: int):
            measurement = await storage.get_measurement(measurement_id)
            if measurement is None:
                raise HTTPException(status_code=404, detail="Measurement not found")
            return measurement

        @measurements_router.put("/{measurement_id}")
        @measurements_router.patch("/{measurement_id}")
        async def update_measurement(measurement_id: int, payload: dict = Body(...)):
            measurement = await storage.update_measurement(measurement_id, payload)
            if measurement is None:
                raise HTTPException(status_code=404, detail="Measurement not found")
            return measurement

        @measurements_router.delete("/{measurement_id}", status_code=204)
        async def delete_measurement(measurement_id: int):
            if not await storage.delete_measurement(measurement_id):
                raise HTTPException(status_code=404, detail="Measurement not found")
            return Response(status_code=204)

        # exercises

        @exercises_router.get("")
        async def list_exercises(category: Optional[str] = None):
            return await storage.list_exercises(category)

        @exercises_router.post("", status_code=201)
        async def create_exercise(payload: dict = Body(...)):
            return await storage.create_exercise(payload)

        @exercises_router.put("/{exercise_id}")
        async def update_exercise(exercise_id: int, payload: dict = Body(...)):
            exercise = await storage.update_exercise(exercise_id, payload)
            if exercise is None:
                raise HTTPException(status_code=404, detail="Exercise not found")
            return exercise

        @exercises_router.delete("/{exercise_id}", status_code=204)
        async def delete_exercise(exercise_id: int):
            if not await storage.delete_exercise(exercise_id):
                raise HTTPException(status_code=404, detail="Exercise not found")
            return Response(status_code=204)

        # workout programs

        @programs_router.get("")
        async def list_programs(user_id: int = user):
            programs = await storage.list_workout_programs(user_id)
            return [
                await storage.get_workout_program_with_exercises(p["id"]) for p in programs
            ]

        @programs_router.post("", status_code=201)
        async def create_program(payload: dict = Body(...), user_id: int = user):
            return await storage.create_workout_program({**payload, "userId": user_id})

        @programs_router.get("/{program_id}")
        async def get_program(program_id: int):
            program = await storage.get_workout_program_with_exercises(program_id)
            if program is None:
                raise HTTPException(status_code=404, detail="Workout program not found")
            return program

        @programs_router.put("/{program_id}")
        async def update_program(program_id: int, payload: dict = Body(...)):
            program = await storage.update_workout_program(program_id, payload)
            if program is None:
                raise HTTPException(status_code=404, detail="Workout program not found")
            return program

        @programs_router.delete("/{program_id}", status_code=204)
        async def delete_program(program_id: int):
            if not await storage.delete_workout_program(program_id):
                raise HTTPException(status_code=404, detail="Workout program not found")
            return Response(status_code=204)

        @programs_router.post("/{program_id}/reorder")
        async def reorder_program(program_id: int, body: ReorderRequest):
            links = await storage.reorder_workout_exercises(program_id, body.order)
            if links is None:
                raise HTTPException(status_code=404, detail="Workout program not found")
            return links

        # workout exercises

        @links_router.post("", status_code=201)
        async def add_exercise_to_workout(payload: dict = Body(...)):
            return await storage.add_exercise_to_workout(payload)

        @links_router.put("/{link_id}")
        async def update_workout_exercise(link_id: int, payload: dict = Body(...)):
            link = await storage.update_workout_exercise(link_id, payload)
            if link is None:
                raise HTTPException(status_code=404, detail="Workout exercise not found")
            return link

        @links_router.delete("/{link_id}", status_code=204)
        async def remove_exercise_from_workout(link_id: int):
            if not await storage.remove_exercise_from_workout(link_id):
                raise HTTPException(status_code=404, detail="Workout exercise not found")
            return Response(status_code=204)

        # workout logs

        @workout_logs_router.get("")
        async def list_workout_logs(user_id: int = user):
            return [
                await self._with_program_name(log)
                for log in await storage.list_workout_logs(user_id)
            ]

        @workout_logs_router.post("", status_code=201)
        async def create_workout_log(payload: dict = Body(...), user_id: int = user):
            return await storage.create_workout_log({**payload, "userId": user_id})

        @workout_logs_router.get("/{log_id}")
        async def get_workout_log(log_id: int):
            log = await storage.get_workout_log(log_id)
            if log is None:
                raise HTTPException(status_code=404, detail="Workout log not found")
            return await self._with_program_name(log)

        @workout_logs_router.put("/{log_id}")
        async def update_workout_log(log_id: int, payload: dict = Body(...)):
            log = await storage.update_workout_log(log_id, payload)
            if log is None:
                raise HTTPException(status_code=404, detail="Workout log not found")
            return log

        @workout_logs_router.put("/{log_id}/complete")
        async def complete_workout_log(log_id: int):
            log = await storage.complete_workout_log(log_id)
            if log is None:
                raise HTTPException(status_code=404, detail="Workout log not found")
            return log

        @workout_logs_router.delete("/{log_id}", status_code=204)
        async def delete_workout_log(log_id: int):
            if not await storage.delete_workout_log(log_id):
                raise HTTPException(status_code=404, detail="Workout log not found")
            return Response(status_code=204)

        @workout_logs_router.get("/{log_id}/exercise-logs")
        async def list_exercise_logs(log_id: int):
            if await storage.get_workout_log(log_id) is None:
                raise HTTPException(status_code=404, detail="Workout log not found")
            return await storage.list_exercise_logs(log_id)

        # exercise logs

        @exercise_logs_router.post("", status_code=201)
        async def create_exercise_log(payload: dict = Body(...)):
            return await storage.create_exercise_log(payload)

        @exercise_logs_router.put("/{log_id}")
        async def update_exercise_log(log_id: int, payload: dict = Body(...)):
            log = await storage.update_exercise_log(log_id, payload)
            if log is None:
                raise HTTPException(status_code=404, detail="Exercise log not found")
            return log

        @exercise_logs_router.delete("/{log_id}", status_code=204)
        async def delete_exercise_log(log_id: int):
            if not await storage.delete_exercise_log(log_id):
                raise HTTPException(status_code=404, detail="Exercise log not found")
            return Response(status_code=204)

        # progress photos

        @photos_router.get("")
        async def list_photos(category: Optional[str] = None, user_id: int = user):
            return await storage.list_progress_photos(user_id, category)

        @photos_router.post("", status_code=201)
        async def create_photo(payload: dict = Body(...), user_id: int = user):
            data = {**payload, "userId": user_id}
            # form clients send "none" or "" when no measurement is picked
            if data.get("relatedMeasurementId") in ("none", ""):
                data["relatedMeasurementId"] = None
            return await storage.create_progress_photo(data)

        @photos_router.get("/{photo_id}")
        async def get_photo(photo_id: int):
            photo = await storage.get_progress_photo_with_measurement(photo_id)
            if photo is None:
                raise HTTPException(status_code=404, detail="Progress photo not found")
            return photo

        @photos_router.delete("/{photo_id}", status_code=204)
        async def delete_photo(photo_id: int):
            if not await storage.delete_progress_photo(photo_id):
                raise HTTPException(status_code=404, detail="Progress photo not found")
            return Response(status_code=204)

        for router in (
            measurements_router,
            exercises_router,
            programs_router,
            links_router,
            workout_logs_router,
            exercise_logs_router,
            photos_router,
        ):
            self.app.include_router(router)


def create_app(settings: Optional[AppSettings] = None, storage: Optional[Storage] = None) -> FastAPI:
    return FitnessAPI(storage=storage, settings=settings).app


if __name__ == "__main__":
    import uvicorn

    api = FitnessAPI()
    logging.basicConfig(level=api.settings.log_level)
    uvicorn.run(api.app)
