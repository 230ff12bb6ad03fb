from types import SimpleNamespace

from crm_agent.config import AgentSettings
from crm_agent.services.completion import FALLBACK_PROMPT, TextCompletion, canned_reply


class FakeChatClient:
    def __init__(self, content=None, error=None, choices=True):
        self.requests = []
        self._content = content
        self._error = error
        self._choices = choices
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self._error:
            raise self._error
        if not self._choices:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self._content))])


def test_canned_reply_table():
    assert canned_reply("hello there").startswith("Hello! I'm Priya")
    assert "budget range" in canned_reply("i want a villa")
    assert canned_reply("qwerty") == FALLBACK_PROMPT


async def test_unconfigured_completion_uses_canned_replies():
    completion = TextCompletion(AgentSettings())
    assert not completion.available
    reply = await completion.complete([{"role": "user", "content": "what is the price?"}])
    assert reply == "Excellent! Which area or city are you interested in? 🏙️"
    assert await completion.complete([]) == FALLBACK_PROMPT


async def test_configured_completion_sends_model_settings(recorder):
    client = FakeChatClient(content="  Which city are you looking in?  ")
    completion = TextCompletion(AgentSettings(openai_model="gpt-4o-mini"), recorder, client=client)

    reply = await completion.complete([{"role": "user", "content": "hi"}])

    assert completion.available
    assert reply == "Which city are you looking in?"
    assert client.requests[0]["model"] == "gpt-4o-mini"
    assert client.requests[0]["max_tokens"] == 500
    assert "LLM completed" in recorder.messages("LLM")


async def test_api_errors_fall_back_to_generic_prompt(recorder):
    completion = TextCompletion(AgentSettings(), recorder, client=FakeChatClient(error=TimeoutError("slow")))
    assert await completion.complete([{"role": "user", "content": "hi"}]) == FALLBACK_PROMPT
    assert "completion_error" in recorder.messages("LLM")


async def test_empty_output_falls_back_to_generic_prompt():
    for client in (FakeChatClient(content="   "), FakeChatClient(choices=False)):
        completion = TextCompletion(AgentSettings(), client=client)
        assert await completion.complete([{"role": "user", "content": "hi"}]) == FALLBACK_PROMPT


async def test_generate_reports_failed_model_calls(recorder):
    failing = TextCompletion(AgentSettings(), recorder, client=FakeChatClient(error=RuntimeError("503")))
    assert await failing.generate([{"role": "user", "content": "hi"}]) is None

    offline = TextCompletion(AgentSettings())
    assert "budget range" in await offline.generate([{"role": "user", "content": "a villa please"}])
