from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from bfasm.compiler import BrainfuckCompiler
from bfasm.service import create_app


class CompileApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(create_app())

    def test_health(self) -> None:
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_compile_returns_listing(self) -> None:
        response = self.client.post("/api/compile", json={"code": "+++"})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["assembly"], BrainfuckCompiler().compile("+++"))
        self.assertIn("    addb $3, (%r12)    # + x3", payload["lines"])
        self.assertEqual(payload["op_count"], 1)
        self.assertEqual(payload["loop_count"], 0)

    def test_compile_respects_memory_size(self) -> None:
        response = self.client.post("/api/compile", json={"code": "", "memory_size": 128})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIn("    .zero 128", response.json()["lines"])

    def test_compile_rejects_invalid_memory_size(self) -> None:
        response = self.client.post("/api/compile", json={"code": "+", "memory_size": 0})
        self.assertEqual(response.status_code, 422)

    def test_unmatched_close_is_unprocessable(self) -> None:
        response = self.client.post("/api/compile", json={"code": "+]"})
        self.assertEqual(response.status_code, 422, response.text)
        detail = response.json()["detail"]
        self.assertEqual(detail["error"], "unmatched_close")
        self.assertEqual(detail["position"], 1)

    def test_unmatched_open_is_unprocessable(self) -> None:
        response = self.client.post("/api/compile", json={"code": "["})
        self.assertEqual(response.status_code, 422, response.text)
        detail = response.json()["detail"]
        self.assertEqual(detail["error"], "unmatched_open")
        self.assertEqual(detail["message"], "Unmatched '['")

    def test_run_returns_program_output(self) -> None:
        response = self.client.post("/api/run", json={"code": "+" * 65 + "."})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["output"], "A")
        self.assertEqual(payload["exit_status"], 0)
        self.assertGreater(payload["steps"], 0)

    def test_run_with_input(self) -> None:
        response = self.client.post("/api/run", json={"code": ",[.[-],]", "input": "hi"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["output"], "hi")
        self.assertEqual(response.json()["loop_count"], 2)

    def test_run_step_limit_conflict(self) -> None:
        response = self.client.post("/api/run", json={"code": "+[]", "max_steps": 50})
        self.assertEqual(response.status_code, 409, response.text)
        self.assertIn("detail", response.json())

    def test_run_uses_app_default_step_limit(self) -> None:
        client = TestClient(create_app(default_max_steps=20))
        response = client.post("/api/run", json={"code": "+[]"})
        self.assertEqual(response.status_code, 409, response.text)


if __name__ == "__main__":
    unittest.main()
