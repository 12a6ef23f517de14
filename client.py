from typing import List, Optional

import requests


class FitnessClient:
    """Simple REST client for the fitness tracker API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session=None,
        user_id: Optional[int] = None,
        api_prefix: str = "/api",
    ) -> None:
        self.base_url = base_url.rstrip("/") + api_prefix.rstrip("/")
        self.session = session or requests.Session()
        self.headers = {"X-User-Id": str(user_id)} if user_id is not None else {}

    def _request(self, method: str, path: str, **kwargs):
        resp = self.session.request(
            method, f"{self.base_url}{path}", headers=self.headers, **kwargs
        )
        resp.raise_for_status()
        if resp.status_code == 204:
            return None
        return resp.json()

    def list_measurements(self, type: Optional[str] = None) -> List[dict]:
        params = {"type": type} if type else None
        return self._request("GET", "/measurements", params=params)

    def latest_measurements(self) -> dict:
        return self._request("GET", "/measurements/latest")

    def add_measurement(self, type: str, value: float, unit: str, date: Optional[str] = None) -> dict:
        body = {"type": type, "value": value, "unit": unit}
        if date is not None:
            body["date"] = date
        return self._request("POST", "/measurements", json=body)

    def update_measurement(self, measurement_id: int, **fields) -> dict:
        return self._request("PATCH", f"/measurements/{measurement_id}", json=fields)

    def delete_measurement(self, measurement_id: int) -> None:
        self._request("DELETE", f"/measurements/{measurement_id}")

    def list_exercises(self, category: Optional[str] = None) -> List[dict]:
        params = {"category": category} if category else None
        return self._request("GET", "/exercises", params=params)

    def list_programs(self) -> List[dict]:
        return self._request("GET", "/workout-programs")

    def get_program(self, program_id: int) -> dict:
        return self._request("GET", f"/workout-programs/{program_id}")

    def create_program(self, name: str, **fields) -> dict:
        return self._request("POST", "/workout-programs", json={"name": name, **fields})

    def add_exercise_to_program(self, program_id: int, exercise_id: int, **fields) -> dict:
        body = {"workoutProgramId": program_id, "exerciseId": exercise_id, **fields}
        return self._request("POST", "/workout-exercises", json=body)

    def reorder_program(self, program_id: int, order: List[int]) -> List[dict]:
        return self._request(
            "POST", f"/workout-programs/{program_id}/reorder", json={"order": order}
        )

    def start_workout(self, program_id: int, date: Optional[str] = None) -> dict:
        body = {"workoutProgramId": program_id}
        if date is not None:
            body["date"] = date
        return self._request("POST", "/workout-logs", json=body)

    def list_workout_logs(self) -> List[dict]:
        return self._request("GET", "/workout-logs")

    def complete_workout(self, log_id: int) -> dict:
        return self._request("PUT", f"/workout-logs/{log_id}/complete")

    def log_set(self, workout_log_id: int, exercise_id: int, set_number: int, **fields) -> dict:
        body = {
            "workoutLogId": workout_log_id,
            "exerciseId": exercise_id,
            "setNumber": set_number,
            **fields,
        }
        return self._request("POST", "/exercise-logs", json=body)

    def list_sets(self, workout_log_id: int) -> List[dict]:
        return self._request("GET", f"/workout-logs/{workout_log_id}/exercise-logs")
