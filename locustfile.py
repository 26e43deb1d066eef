from locust import HttpUser, task, between
import random
import uuid


class CoursebookUser(HttpUser):
    wait_time = between(1, 2)

    def on_start(self):
        # register a fresh user; the token comes back once the worker answers
        self.username = f"load-{uuid.uuid4().hex[:12]}"
        self.password = "load-test"
        self.token = None
        with self.client.put(
            "/register",
            json={"username": self.username, "password": self.password},
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.token = resp.text
            else:
                resp.success()

    @task(3)
    def list_courses(self):
        self.client.get("/course", params={"page": random.randint(0, 3), "perPage": 10})

    @task
    def login(self):
        with self.client.post(
            "/login",
            json={"username": self.username, "password": self.password},
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                self.token = resp.text
            else:
                resp.success()

    @task
    def create_course(self):
        if not self.token:
            return
        self.client.put(
            "/course",
            json={
                "name": f"course-{uuid.uuid4().hex[:8]}",
                "sources": ["https://example.org/intro"],
                "description": "load test course",
            },
            headers={"Authorization": self.token},
        )
