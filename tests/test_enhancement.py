import unittest

import requests

from roadwise.config import Settings
from roadwise.enhancement import (
    OllamaClient,
    OllamaEnhancer,
    build_enhancement_messages,
    validate_enhanced_text,
)
from roadwise.errors import EnhancementFailed
from roadwise.session import EnhancementContext


class DummyResponse:
    def __init__(self, status_code=200, content="ok", body=None):
        self.status_code = status_code
        self._content = content
        self._body = body
        self.text = content

    def json(self):
        if self._body is not None:
            return self._body
        return {"message": {"content": self._content}}


CONTEXT = EnhancementContext(lat=40.416775, lng=-3.70379, speed_kmh=87.6, distance_remaining_km=41.6)


class TestEnhancementText(unittest.TestCase):
    def test_messages_carry_base_text_and_context(self):
        msgs = build_enhancement_messages("Warning. Storm ahead.", CONTEXT)
        self.assertEqual([m["role"] for m in msgs], ["system", "user"])
        content = msgs[1]["content"]
        self.assertIn('"Warning. Storm ahead."', content)
        self.assertIn("Location: 40.4168, -3.7038", content)
        self.assertIn("Speed: 88 km/h", content)
        self.assertIn("Distance remaining: 42 km", content)

    def test_unknown_remaining_distance(self):
        context = EnhancementContext(lat=0.0, lng=0.0, speed_kmh=0.0)
        self.assertIn("Distance remaining: ? km", build_enhancement_messages("x", context)[1]["content"])

    def test_validate_strips_fences_and_quotes(self):
        self.assertEqual(validate_enhanced_text('```\n"Slow down, storm ahead."\n```'), "Slow down, storm ahead.")

    def test_validate_rejects_empty_and_long(self):
        with self.assertRaises(EnhancementFailed):
            validate_enhanced_text("  ")
        with self.assertRaises(EnhancementFailed):
            validate_enhanced_text(None)
        with self.assertRaises(EnhancementFailed):
            validate_enhanced_text("a" * 301)


class TestOllamaClient(unittest.TestCase):
    def setUp(self):
        from roadwise import enhancement

        self._orig_post = enhancement.requests.post
        self._orig_sleep = enhancement.time.sleep
        enhancement.time.sleep = lambda _s: None
        self.settings = Settings(ollama_base_url="http://ollama:11434/", enhancement_timeout_seconds=3.0)

    def tearDown(self):
        from roadwise import enhancement

        enhancement.requests.post = self._orig_post
        enhancement.time.sleep = self._orig_sleep

    def _use(self, fake_post):
        from roadwise import enhancement

        enhancement.requests.post = fake_post

    def test_chat_success(self):
        seen = {}

        def fake_post(url, json=None, timeout=None):
            seen.update(url=url, json=json, timeout=timeout)
            return DummyResponse(200, "hi")

        self._use(fake_post)
        out = OllamaClient(self.settings).chat([{"role": "user", "content": "hi"}])
        self.assertEqual(out, "hi")
        self.assertEqual(seen["url"], "http://ollama:11434/api/chat")
        self.assertEqual(seen["timeout"], 3.0)
        self.assertFalse(seen["json"]["stream"])

    def test_chat_non_200(self):
        self._use(lambda url, json=None, timeout=None: DummyResponse(500, "err"))
        with self.assertRaises(EnhancementFailed):
            OllamaClient(self.settings).chat([])

    def test_chat_retries_on_eof(self):
        responses = [DummyResponse(500, "unexpected EOF"), DummyResponse(200, "second time")]
        self._use(lambda url, json=None, timeout=None: responses.pop(0))
        self.assertEqual(OllamaClient(self.settings).chat([]), "second time")

    def test_chat_transport_error(self):
        def fake_post(url, json=None, timeout=None):
            raise requests.exceptions.ConnectionError("refused")

        self._use(fake_post)
        with self.assertRaises(EnhancementFailed):
            OllamaClient(self.settings, max_retries=0).chat([])

    def test_enhancer_validates_output(self):
        self._use(lambda url, json=None, timeout=None: DummyResponse(200, "```\nStorm ahead, slow down.\n```"))
        enhancer = OllamaEnhancer(OllamaClient(self.settings))
        self.assertEqual(enhancer.enhance("Warning.", CONTEXT), "Storm ahead, slow down.")

    def test_enhancer_rejects_empty_reply(self):
        self._use(lambda url, json=None, timeout=None: DummyResponse(200, body={"message": {}}))
        with self.assertRaises(EnhancementFailed):
            OllamaEnhancer(OllamaClient(self.settings)).enhance("Warning.", CONTEXT)


if __name__ == "__main__":
    unittest.main()
