"""
Tests for authentication, /api/auth/* and /api/usage.
"""

import os
import sys
import unittest

import jwt

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from helpers import TEST_JWT_SECRET, auth_headers, make_token
from app.auth import verify_supabase_token
from src.types.usage import Tier


class TestVerifySupabaseToken(unittest.TestCase):

    def test_valid_token(self):
        claims = verify_supabase_token(make_token(sub="abc"), TEST_JWT_SECRET)
        self.assertEqual(claims["sub"], "abc")

    def test_wrong_secret(self):
        with self.assertRaises(jwt.InvalidSignatureError):
            verify_supabase_token(make_token(secret="another-secret"), TEST_JWT_SECRET)

    def test_wrong_audience(self):
        with self.assertRaises(jwt.InvalidAudienceError):
            verify_supabase_token(make_token(audience="anon"), TEST_JWT_SECRET)

    def test_expired(self):
        with self.assertRaises(jwt.ExpiredSignatureError):
            verify_supabase_token(make_token(expires_in=-60), TEST_JWT_SECRET)

    def test_missing_subject(self):
        token = jwt.encode({"aud": "authenticated", "exp": 4102444800}, TEST_JWT_SECRET, algorithm="HS256")
        with self.assertRaises(jwt.MissingRequiredClaimError):
            verify_supabase_token(token, TEST_JWT_SECRET)


class AuthRouteTestCase(unittest.TestCase):

    def setUp(self):
        from server import app

        self.app = app
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)


class TestMe(AuthRouteTestCase):

    def test_new_user_starts_on_free_tier(self):
        response = self.client.get(
            "/api/auth/me",
            headers=auth_headers(metadata={"full_name": "Ada", "avatar_url": "https://img.test/a.png"}),
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["user"]["email"], "painter@example.com")
        self.assertEqual(data["user"]["name"], "Ada")
        self.assertEqual(data["user"]["picture"], "https://img.test/a.png")
        self.assertEqual(data["user"]["tier"], "free")
        self.assertEqual(data["usage"]["imagesLimit"], 2)
        self.assertTrue(data["usage"]["imageLimitIsLifetime"])

    def test_same_subject_maps_to_same_user(self):
        first = self.client.get("/api/auth/me", headers=auth_headers(sub="sb-7")).json()
        second = self.client.get("/api/auth/me", headers=auth_headers(sub="sb-7")).json()
        other = self.client.get("/api/auth/me", headers=auth_headers(sub="sb-8")).json()

        self.assertEqual(first["user"]["id"], second["user"]["id"])
        self.assertNotEqual(first["user"]["id"], other["user"]["id"])

    def test_tier_comes_from_user_store(self):
        me = self.client.get("/api/auth/me", headers=auth_headers()).json()
        self.client.portal.call(self.app.state.user_store.set_tier, me["user"]["id"], Tier.TESTER)

        data = self.client.get("/api/auth/me", headers=auth_headers()).json()

        self.assertEqual(data["user"]["tier"], "tester")
        self.assertEqual(data["usage"]["imagesLimit"], 50)

    def test_invalid_token(self):
        response = self.client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "INVALID_TOKEN")

    def test_expired_token(self):
        response = self.client.get("/api/auth/me", headers=auth_headers(expires_in=-60))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "EXPIRED_TOKEN")

    def test_missing_token(self):
        response = self.client.get("/api/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "AUTHENTICATION_REQUIRED")


class TestUsageAndLogout(AuthRouteTestCase):

    def test_usage(self):
        response = self.client.get("/api/usage", headers=auth_headers())

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["tier"], "free")
        self.assertEqual(data["imagesUsed"], 0)
        self.assertEqual(data["imagesRemaining"], 2)
        self.assertEqual(data["enhancementsLimit"], 5)
        self.assertIn("resetTime", data)

    def test_logout_clears_cookie(self):
        response = self.client.post("/api/auth/logout")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        self.assertIn("auth_token=", response.headers["set-cookie"])


if __name__ == "__main__":
    unittest.main()
