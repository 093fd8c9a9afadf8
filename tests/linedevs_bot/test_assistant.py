"""
Tests for the Gemini assistant client.
"""

import asyncio

import aiohttp

from src.linedevs_bot.assistant import FAILURE_TEXT, NOT_CONFIGURED_TEXT, AssistantClient

ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"


def candidate(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


class TestAssistantClient:

    def test_not_configured(self, http_session, services):
        client = AssistantClient(http_session, services, api_key="")

        reply = asyncio.run(client.generate("hi"))

        assert reply.success is False
        assert reply.text == NOT_CONFIGURED_TEXT
        assert http_session.calls == []

    def test_success(self, http_session, services):
        http_session.route("POST", ENDPOINT, payload=candidate("Hello ", "there"))
        client = AssistantClient(http_session, services, api_key="k")

        reply = asyncio.run(client.generate("hi"))

        assert reply.success is True
        assert reply.text == "Hello there"
        call = http_session.calls[0]
        assert call["params"] == {"key": "k"}
        assert call["json"] == {"contents": [{"parts": [{"text": "hi"}]}]}

    def test_string_content(self, http_session, services):
        http_session.route("POST", ENDPOINT, payload={"candidates": [{"content": "plain"}]})
        client = AssistantClient(http_session, services, api_key="k")

        assert asyncio.run(client.generate("hi")).text == "plain"

    def test_http_error(self, http_session, services):
        http_session.route("POST", ENDPOINT, status=429, payload={"error": {"message": "quota"}})
        client = AssistantClient(http_session, services, api_key="k")

        reply = asyncio.run(client.generate("hi"))

        assert reply.success is False
        assert reply.text == FAILURE_TEXT
        assert reply.error == "quota"

    def test_no_candidates(self, http_session, services):
        http_session.route("POST", ENDPOINT, payload={"candidates": []})
        client = AssistantClient(http_session, services, api_key="k")

        reply = asyncio.run(client.generate("hi"))

        assert reply.success is False
        assert reply.error == "empty response"

    def test_connection_error(self, http_session, services):
        http_session.route("POST", ENDPOINT, error=aiohttp.ClientConnectionError("reset"))
        client = AssistantClient(http_session, services, api_key="k")

        assert asyncio.run(client.generate("hi")).text == FAILURE_TEXT
