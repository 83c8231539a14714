from typing import Callable

import pytest

from page_analyzer.core.fetcher import Fetcher

from .helpers import make_resolver, mock_client


@pytest.fixture
def resolver():
    return make_resolver()


@pytest.fixture
def fetcher_factory(resolver):
    def build(handler: Callable, **kwargs) -> Fetcher:
        kwargs.setdefault("timeout", 5)
        kwargs.setdefault("max_redirects", 3)
        kwargs.setdefault("max_bytes", 1 << 20)
        kwargs.setdefault("resolver", resolver)
        return Fetcher(client=mock_client(handler), **kwargs)

    return build
