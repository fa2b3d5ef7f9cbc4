"""
Tests for the Gemini secondary moderation check.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from helpers import mock_gemini, text_response, verdict_response
from src.generation.gemini import GeminiError
from src.moderation.ai import AI_FAILED_FLAG, AI_FLAGGED_FLAG, ai_moderate
from src.types.moderation import ModerationAction, Severity

MODEL = "gemini-2.5-flash"


class TestAIModeration(unittest.IsolatedAsyncioTestCase):

    async def test_safe_verdict(self):
        gemini = mock_gemini(verdict_response({"safe": True, "reason": "fine", "severity": "low"}))

        result = await ai_moderate("a cat", gemini, MODEL)

        self.assertTrue(result.allowed)
        self.assertEqual(result.action, ModerationAction.ALLOWED)
        model, parts, config = gemini.generate_content.call_args.args
        self.assertEqual(model, MODEL)
        self.assertIn('Prompt to analyze: "a cat"', parts[0]["text"])
        self.assertEqual(config["temperature"], 0.1)

    async def test_unsafe_verdict(self):
        gemini = mock_gemini(verdict_response({"safe": False, "reason": "graphic", "severity": "high"}))

        result = await ai_moderate("something", gemini, MODEL)

        self.assertFalse(result.allowed)
        self.assertEqual(result.flags, [AI_FLAGGED_FLAG])
        self.assertEqual(result.severity, Severity.HIGH)
        self.assertEqual(result.message, "AI moderation failed: graphic")

    async def test_fenced_json_is_accepted(self):
        gemini = mock_gemini(text_response('```json\n{"safe": true, "reason": "ok", "severity": "low"}\n```'))
        result = await ai_moderate("a cat", gemini, MODEL)
        self.assertTrue(result.allowed)

    async def test_unknown_severity_defaults_to_medium(self):
        gemini = mock_gemini(verdict_response({"safe": False, "reason": "x", "severity": "extreme"}))
        result = await ai_moderate("something", gemini, MODEL)
        self.assertEqual(result.severity, Severity.MEDIUM)

    async def test_failures_block(self):
        cases = {
            "upstream error": GeminiError("boom", status_code=500),
            "not json": text_response("I think it is fine"),
            "missing safe": verdict_response({"reason": "?"}),
            "non-boolean safe": verdict_response({"safe": "yes"}),
            "no text": {"candidates": []},
        }
        for name, response in cases.items():
            with self.subTest(case=name):
                result = await ai_moderate("a cat", mock_gemini(response), MODEL)
                self.assertTrue(result.is_blocked)
                self.assertEqual(result.flags, [AI_FAILED_FLAG])
                self.assertEqual(result.severity, Severity.MEDIUM)


if __name__ == "__main__":
    unittest.main()
