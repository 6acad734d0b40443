import unittest
from unittest import mock

from gradeseer.ai.prompts import APP_FALLBACK_RESPONSE, DEFAULT_MESSAGES, MODE_APP
from gradeseer.core.models import Subject
from gradeseer.services.advisor_service import SOURCE_FALLBACK, SOURCE_LLM, AdvisorService
from gradeseer.services.gemini_service import GeminiAuthError, GeminiService, GeminiServiceError, GenerationResult


def sample_subject():
    return Subject.from_dict(
        {
            "id": "s1",
            "name": "Statistics",
            "target_grade": 2.0,
            "components": [
                {
                    "id": "c1",
                    "name": "Exams",
                    "percentage": 100,
                    "priority": 1,
                    "items": [
                        {"id": "i1", "name": "Midterm", "score": 70, "max": 100},
                        {"id": "i2", "name": "Final", "score": None, "max": 100},
                    ],
                }
            ],
        }
    )


class AdvisorServiceTests(unittest.TestCase):
    def setUp(self):
        self.llm = mock.Mock(spec=GeminiService)

    def test_llm_reply(self):
        self.llm.generate.return_value = GenerationResult(text="Focus on the final.", model="m1")
        reply = AdvisorService(self.llm).subject_chat(sample_subject(), "help")

        self.assertEqual(reply.to_dict(), {"response": "Focus on the final.", "model": "m1", "source": SOURCE_LLM})
        prompt = self.llm.generate.call_args.args[0]
        self.assertIn('"Statistics"', prompt)
        self.assertIn('User\'s Message: "help"', prompt)

    def test_empty_reply_uses_fallback_and_keeps_model(self):
        self.llm.generate.return_value = GenerationResult(text="", model="m1")
        reply = AdvisorService(self.llm).subject_chat(sample_subject(), None)

        self.assertEqual(reply.source, SOURCE_FALLBACK)
        self.assertEqual(reply.model, "m1")
        self.assertTrue(reply.response.startswith("Status: Below target"))

    def test_exhausted_models_use_fallback(self):
        self.llm.generate.return_value = GenerationResult(text="", model=None)
        reply = AdvisorService(self.llm).dashboard_chat([sample_subject()], "")

        self.assertEqual(reply.source, SOURCE_FALLBACK)
        self.assertIsNone(reply.model)
        self.assertIn("Needs attention: Statistics", reply.response)
        self.assertIn("Upcoming priorities: Statistics: Final", reply.response)

    def test_service_error_uses_fallback(self):
        self.llm.generate.side_effect = GeminiServiceError("INVALID_MODEL_LIST")
        reply = AdvisorService(self.llm).app_chat("how?")
        self.assertEqual(reply.to_dict(), {"response": APP_FALLBACK_RESPONSE, "model": None, "source": SOURCE_FALLBACK})

    def test_auth_error_propagates(self):
        self.llm.generate.side_effect = GeminiAuthError(401, "bad key")
        with self.assertRaises(GeminiAuthError):
            AdvisorService(self.llm).app_chat("how?")

    def test_app_chat_uses_smaller_budget(self):
        self.llm.generate.return_value = GenerationResult(text="Tap + to add a subject.", model="m2")
        AdvisorService(self.llm).app_chat(None)

        prompt = self.llm.generate.call_args.args[0]
        self.assertIn(DEFAULT_MESSAGES[MODE_APP], prompt)
        self.assertEqual(self.llm.generate.call_args.kwargs["max_output_tokens"], 800)

    def test_without_llm(self):
        reply = AdvisorService(None).dashboard_chat([], None)
        self.assertEqual(reply.source, SOURCE_FALLBACK)
        self.assertIn("No subjects below target.", reply.response)

    @mock.patch("gradeseer.services.advisor_service.GeminiService.from_settings")
    def test_from_settings_without_key(self, from_settings):
        from_settings.side_effect = GeminiServiceError("Missing GEMINI_API_KEY in environment")
        self.assertIsNone(AdvisorService.from_settings().llm)


if __name__ == "__main__":
    unittest.main()
