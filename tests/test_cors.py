import unittest

import azure.functions as func

from utils.cors import EXPOSED_HEADERS, _is_local_origin, build_cors_headers, preflight_response


def _request(headers):
    return func.HttpRequest(method="OPTIONS", url="/api/organizations", headers=headers, body=b"")


class CorsTests(unittest.TestCase):
    def test_local_origin_supports_https_localhost(self):
        self.assertTrue(_is_local_origin("http://localhost:5173"))
        self.assertTrue(_is_local_origin("https://localhost:5173"))
        self.assertTrue(_is_local_origin("http://127.0.0.1:5173"))
        self.assertFalse(_is_local_origin("https://crm.example.com"))

    def test_methods_always_include_options(self):
        headers = build_cors_headers(_request({"origin": "http://localhost:3000"}), ["get", "POST", "GET"])
        self.assertEqual(headers["Access-Control-Allow-Methods"], "GET, POST, OPTIONS")

    def test_rate_limit_headers_are_exposed(self):
        headers = build_cors_headers(_request({"origin": "http://localhost:3000"}), ["GET"])
        for name in EXPOSED_HEADERS:
            self.assertIn(name, headers["Access-Control-Expose-Headers"])

    def test_requested_headers_are_mirrored(self):
        headers = build_cors_headers(
            _request({"origin": "http://localhost:3000", "access-control-request-headers": "X-Trace-Id"}),
            ["GET"],
        )
        self.assertIn("X-Trace-Id", headers["Access-Control-Allow-Headers"])
        self.assertIn("Authorization", headers["Access-Control-Allow-Headers"])

    def test_preflight_is_empty_204_with_max_age(self):
        response = preflight_response(_request({"origin": "http://localhost:3000"}), ["GET"])
        self.assertEqual(response.status_code, 204)
        self.assertEqual(response.get_body(), b"")
        self.assertEqual(response.headers["Access-Control-Max-Age"], "86400")


if __name__ == "__main__":
    unittest.main()
