import base64
import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest import mock

import azure.functions as func

from crm_shared import (
    hash_password,
    issue_session_token,
    session_identity_provider,
    verify_password,
    verify_session_token,
)
from shared.db import Base, SessionLocal, User, engine


class _FutureDatetime(datetime):
    @classmethod
    def now(cls, tz=None):
        return datetime.now(tz) + timedelta(days=30)


def _request(token=None, params=None):
    headers = {"authorization": f"Bearer {token}"} if token else {}
    return func.HttpRequest(
        method="GET",
        url="/api/auth/me",
        headers=headers,
        params=params or {},
        route_params={},
        body=b"",
    )


class PasswordHashTests(unittest.TestCase):
    def test_round_trip(self):
        stored = hash_password("s3cret-pass")
        self.assertTrue(verify_password("s3cret-pass", stored))
        self.assertFalse(verify_password("wrong", stored))

    def test_salts_differ(self):
        self.assertNotEqual(hash_password("same"), hash_password("same"))

    def test_missing_hash_never_verifies(self):
        self.assertFalse(verify_password("anything", None))
        self.assertFalse(verify_password("anything", "no-separator"))


class SessionTokenTests(unittest.TestCase):
    def setUp(self):
        self.user = SimpleNamespace(id="user-1", email=" Owner@Example.com ", role="Owner")

    def test_claims_are_normalized(self):
        token, expires_at = issue_session_token(self.user)
        claims = verify_session_token(token)
        self.assertIsNotNone(expires_at)
        self.assertEqual(claims["sub"], "user-1")
        self.assertEqual(claims["email"], "owner@example.com")
        self.assertEqual(claims["role"], "admin")

    def test_forged_claims_are_rejected(self):
        token, _ = issue_session_token(self.user)
        _, signature = token.split(".", 1)
        forged = base64.urlsafe_b64encode(b'{"sub":"user-2","email":"x@example.com","exp":9999999999}')
        self.assertIsNone(verify_session_token(f"{forged.decode('ascii').rstrip('=')}.{signature}"))

    def test_expired_token_is_rejected(self):
        token, _ = issue_session_token(self.user)
        with mock.patch("crm_shared.datetime", _FutureDatetime):
            self.assertIsNone(verify_session_token(token))

    def test_no_secret_means_no_tokens(self):
        token, _ = issue_session_token(self.user)
        with mock.patch("crm_shared.get_session_secret", return_value=""):
            self.assertEqual(issue_session_token(self.user), (None, None))
            self.assertIsNone(verify_session_token(token))

    def test_malformed_token(self):
        self.assertIsNone(verify_session_token("not-a-token"))
        self.assertIsNone(verify_session_token(""))


class SessionIdentityProviderTests(unittest.TestCase):
    def setUp(self):
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            active = User(email="active@example.com", name="Active", role="manager", is_active=True)
            inactive = User(email="inactive@example.com", name="Inactive", role="user", is_active=False)
            db.add_all([active, inactive])
            db.commit()
            self.active_token, _ = issue_session_token(active)
            self.inactive_token, _ = issue_session_token(inactive)
            self.active_id = active.id
        finally:
            db.close()

    def tearDown(self):
        SessionLocal.remove()

    def test_missing_token_is_unauthenticated(self):
        outcome = session_identity_provider(_request())
        self.assertIsNone(outcome.actor)
        self.assertEqual(outcome.error.status_code, 401)

    def test_valid_token_resolves_actor(self):
        outcome = session_identity_provider(_request(self.active_token))
        self.assertIsNone(outcome.error)
        self.assertEqual(outcome.actor.user_id, self.active_id)
        self.assertEqual(outcome.actor.role, "manager")

    def test_query_parameter_fallback(self):
        outcome = session_identity_provider(_request(params={"auth_token": self.active_token}))
        self.assertIsNotNone(outcome.actor)

    def test_inactive_account_is_forbidden(self):
        outcome = session_identity_provider(_request(self.inactive_token))
        self.assertIsNone(outcome.actor)
        self.assertEqual(outcome.error.status_code, 403)


if __name__ == "__main__":
    unittest.main()
