"""Shared test fixtures."""

from unittest.mock import Mock

import pytest

from entsporter.api.client import APIResponse, extract_results
from entsporter.api.exceptions import AppSearchNotFoundError


class FakeAppSearchClient:
    """In-memory stand-in for the async half of AppSearchClient.

    Responses are registered per (method, endpoint); a list of outcomes is
    consumed in order and its last element repeats. An outcome that is an
    exception is raised. Unregistered GETs answer 404, other methods ``{}``.
    """

    def __init__(self, url='https://ent.example.com'):
        self.config = Mock(url=url)
        self.calls = []
        self.responses = {}

    def on(self, method, endpoint, *outcomes):
        self.responses[(method, endpoint)] = list(outcomes)
        return self

    def calls_to(self, method, prefix=''):
        return [
            (endpoint, body)
            for m, endpoint, body in self.calls
            if m == method and endpoint.startswith(prefix)
        ]

    async def _respond(self, method, endpoint, body=None):
        self.calls.append((method, endpoint, body))
        outcomes = self.responses.get((method, endpoint))

        if outcomes is None:
            if method == 'GET':
                raise AppSearchNotFoundError('Not found', status_code=404)
            outcome = {}
        elif len(outcomes) > 1:
            outcome = outcomes.pop(0)
        else:
            outcome = outcomes[0]

        if isinstance(outcome, Exception):
            raise outcome
        return APIResponse(status_code=200, data=outcome, headers={}, success=True)

    async def get_async(self, endpoint, params=None, **kwargs):
        return await self._respond('GET', endpoint)

    async def post_async(self, endpoint, data=None, **kwargs):
        return await self._respond('POST', endpoint, data)

    async def put_async(self, endpoint, data=None, **kwargs):
        return await self._respond('PUT', endpoint, data)

    async def delete_async(self, endpoint, **kwargs):
        return await self._respond('DELETE', endpoint)

    async def get_paginated_async(self, endpoint, params=None, page_size=25):
        response = await self._respond('GET', endpoint)
        return extract_results(response.data)


@pytest.fixture
def fake_client():
    return FakeAppSearchClient()
