import json
import os
import unittest
from unittest import mock

import requests

from gemini_client import (
    API_KEY_ENV,
    MOCK_RESPONSES,
    GeminiClient,
    GeminiError,
    build_prompt_with_context,
)


def _candidate(text: str, finish_reason: str | None = None) -> dict:
    candidate: dict = {"content": {"parts": [{"text": text}]}}
    if finish_reason:
        candidate["finishReason"] = finish_reason
    return {"candidates": [candidate]}


class MockModeTests(unittest.TestCase):
    def test_missing_key_returns_labeled_mock(self) -> None:
        client = GeminiClient(mock_token_delay=0)
        result = client.generate("Please explain rs9923231")
        self.assertEqual(result["finish_reason"], "MOCK")
        self.assertEqual(result["text"], MOCK_RESPONSES["explain"])
        self.assertTrue(result["text"].startswith("[Mock response]"))

    def test_mock_tokens_reassemble_full_text(self) -> None:
        client = GeminiClient("key", mock_mode=True, mock_token_delay=0)
        tokens: list[str] = []
        completed: list[str] = []
        result = client.generate(
            "Build me a lifestyle schedule",
            stream=True,
            on_token=tokens.append,
            on_complete=completed.append,
        )
        self.assertEqual("".join(tokens), result["text"])
        self.assertEqual(completed, [MOCK_RESPONSES["lifestyle"]])

    def test_key_management(self) -> None:
        client = GeminiClient()
        self.assertFalse(client.has_api_key())
        client.set_api_key("abc")
        self.assertTrue(client.has_api_key())
        client.clear_api_key()
        self.assertFalse(client.has_api_key())
        client.set_api_key(None)
        self.assertFalse(client.has_api_key())

    def test_from_env_reads_api_key(self) -> None:
        with mock.patch.dict(os.environ, {API_KEY_ENV: "env-key"}):
            self.assertEqual(GeminiClient.from_env().api_key, "env-key")


class RemoteGenerationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.MagicMock()
        self.client = GeminiClient("secret", session=self.session)

    def test_single_request_extracts_candidate_text(self) -> None:
        response = mock.Mock()
        response.json.return_value = _candidate("Hello there", "STOP")
        self.session.post.return_value = response

        result = self.client.generate("hi", temperature=0.2, max_tokens=64)

        self.assertEqual(result, {"text": "Hello there", "finish_reason": "STOP"})
        args, kwargs = self.session.post.call_args
        self.assertTrue(args[0].endswith("/gemini-2.0-flash:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "secret"})
        config = kwargs["json"]["generationConfig"]
        self.assertEqual(config["temperature"], 0.2)
        self.assertEqual(config["maxOutputTokens"], 64)

    def test_context_is_prepended_to_prompt(self) -> None:
        response = mock.Mock()
        response.json.return_value = _candidate("ok")
        self.session.post.return_value = response

        self.client.generate("What now?", context={"page": "results"})

        sent = self.session.post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        self.assertTrue(sent.startswith("Current page: results"))
        self.assertTrue(sent.endswith("User question: What now?"))

    def test_blocked_prompt_raises_and_notifies(self) -> None:
        response = mock.Mock()
        response.json.return_value = {"promptFeedback": {"blockReason": "SAFETY"}}
        self.session.post.return_value = response
        errors: list[Exception] = []

        with self.assertRaises(GeminiError) as ctx:
            self.client.generate("hi", on_error=errors.append)

        self.assertIn("SAFETY", str(ctx.exception))
        self.assertEqual(len(errors), 1)

    def test_network_failure_is_wrapped(self) -> None:
        self.session.post.side_effect = requests.ConnectionError("offline")
        errors: list[Exception] = []

        with self.assertRaises(GeminiError):
            self.client.generate("hi", on_error=errors.append)

        self.assertIsInstance(errors[0], requests.ConnectionError)

    def test_streaming_delivers_chunks_in_order(self) -> None:
        response = mock.MagicMock()
        response.iter_lines.return_value = [
            "data: " + json.dumps(_candidate("Hel")),
            "",
            ": keep-alive",
            "data: " + json.dumps(_candidate("lo", "STOP")),
        ]
        self.session.post.return_value.__enter__.return_value = response
        tokens: list[str] = []
        completed: list[str] = []

        result = self.client.generate(
            "hi", stream=True, on_token=tokens.append, on_complete=completed.append
        )

        self.assertEqual(tokens, ["Hel", "lo"])
        self.assertEqual(completed, ["Hello"])
        self.assertEqual(result, {"text": "Hello", "finish_reason": "STOP"})
        args, kwargs = self.session.post.call_args
        self.assertTrue(args[0].endswith(":streamGenerateContent"))
        self.assertEqual(kwargs["params"], {"key": "secret", "alt": "sse"})
        self.assertTrue(kwargs["stream"])


class PromptContextTests(unittest.TestCase):
    def test_empty_context_leaves_prompt_alone(self) -> None:
        self.assertEqual(build_prompt_with_context("q", None), "q")
        self.assertEqual(build_prompt_with_context("q", {}), "q")

    def test_context_lists_are_capped(self) -> None:
        markers = [{"gene": f"G{i}", "rsid": f"rs{i}", "genotype": "AG"} for i in range(8)]
        recommendations = [{"title": f"T{i}"} for i in range(5)]
        text = build_prompt_with_context(
            "q",
            {"markers": markers, "recommendations": recommendations, "user_profile": {"age": 40}},
        )
        self.assertIn("- G4 (rs4): AG", text)
        self.assertNotIn("rs5", text)
        self.assertIn("- T2", text)
        self.assertNotIn("- T3", text)
        self.assertIn('User profile: {"age": 40}', text)


if __name__ == "__main__":
    unittest.main()
