import asyncio

import httpx
import pytest

from page_analyzer.core.analyzer import Analyzer
from page_analyzer.core.errors import SSRFBlockedError, TransportError, UpstreamStatusError
from page_analyzer.core.fetcher import Fetcher
from page_analyzer.core.models import AnalyzeParams

from .helpers import html_page, make_resolver, mock_client

PAGE = """<!DOCTYPE html>
<html>
  <head><title>My Test Page</title></head>
  <body>
    <h1>Main Heading</h1>
    <h2>Sub Heading</h2>
    <a href="/internal">Internal Link</a>
    <a href="https://example.com">External Link</a>
    <form><input type="password" /></form>
  </body>
</html>"""


def build(page_handler, probe_handler=None, resolver=None, **kwargs) -> Analyzer:
    fetcher = Fetcher(
        timeout=kwargs.pop("fetch_timeout", 5),
        max_bytes=kwargs.pop("max_bytes", 1 << 20),
        client=mock_client(page_handler),
        resolver=resolver or make_resolver(),
    )
    probe = mock_client(probe_handler or (lambda r: httpx.Response(200)))
    return Analyzer(fetcher, probe_client=probe, **kwargs)


@pytest.mark.asyncio
async def test_basic_page():
    analyzer = build(lambda r: html_page(PAGE))
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert res.url == "https://site.example/"
    assert res.html_version == "HTML5"
    assert res.title == "My Test Page"
    assert res.headings == {"h1": 1, "h2": 1, "h3": 0, "h4": 0, "h5": 0, "h6": 0}
    assert res.links_internal == 1
    assert res.links_external == 1
    assert res.links_inaccessible == 0
    assert res.login_form_present is True
    assert res.errors == []
    assert res.warnings == []


@pytest.mark.asyncio
async def test_inaccessible_links_counted():
    probed = []

    def probe(request):
        probed.append(str(request.url))
        if request.url.host == "example.com":
            return httpx.Response(404)
        return httpx.Response(200)

    analyzer = build(lambda r: html_page(PAGE), probe)
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert sorted(probed) == ["https://example.com", "https://site.example/internal"]
    assert res.links_inaccessible == 1
    assert res.links_inaccessible <= res.links_internal + res.links_external


@pytest.mark.asyncio
async def test_host_comparison_ignores_case():
    html = '<html><body><a href="https://SITE.example/a">a</a><a href="https://site.example:8443/b">b</a></body></html>'
    analyzer = build(lambda r: html_page(html))
    res, _ = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))
    # a different port makes a different authority
    assert res.links_internal == 1
    assert res.links_external == 1


@pytest.mark.asyncio
async def test_duplicate_links_counted_each_time():
    html = '<html><body>' + '<a href="/same">x</a>' * 3 + '</body></html>'
    calls = []

    def probe(request):
        calls.append(request)
        return httpx.Response(200)

    analyzer = build(lambda r: html_page(html), probe)
    res, _ = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))
    assert res.links_internal == 3
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_upstream_error_status():
    analyzer = build(lambda r: httpx.Response(500, content=b"boom"))
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert isinstance(err, UpstreamStatusError)
    assert err.status_code == 500
    assert res.errors == ["upstream status: 500"]
    assert res.title == ""
    assert res.html_version == ""
    assert set(res.headings) == {"h1", "h2", "h3", "h4", "h5", "h6"}


@pytest.mark.asyncio
async def test_ssrf_block_reported():
    analyzer = build(lambda r: html_page(PAGE), resolver=make_resolver(default=["10.0.0.1"]))
    res, err = await analyzer.analyze(AnalyzeParams(url="http://intranet.example/"))

    assert isinstance(err, SSRFBlockedError)
    assert res.errors == ["refusing to fetch private address"]
    assert res.links_internal == res.links_external == res.links_inaccessible == 0


@pytest.mark.asyncio
async def test_fetch_timeout_reported():
    async def slow(request):
        await asyncio.sleep(1)
        return html_page(PAGE)

    analyzer = build(slow, fetch_timeout=30)
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/", fetch_timeout_seconds=0.1))

    assert isinstance(err, TransportError)
    assert len(res.errors) == 1
    assert "timeout" in res.errors[0]


@pytest.mark.asyncio
async def test_truncated_body_is_still_analyzed():
    filler = "<p>" + "x" * 4096 + "</p>"
    html = f"<!DOCTYPE html><html><head><title>Big</title></head><body><h1>a</h1>{filler}<h2>lost</h2></body></html>"
    analyzer = build(lambda r: html_page(html), max_bytes=1024)
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert res.title == "Big"
    assert res.headings["h1"] == 1
    assert res.headings["h2"] == 0
    assert res.warnings == ["body truncated at 1024 bytes"]


@pytest.mark.asyncio
async def test_deadline_expiring_during_link_validation():
    html = "<html><body>" + "".join(f'<a href="https://h{i}.example/">{i}</a>' for i in range(4)) + "</body></html>"

    async def hang(request):
        await asyncio.sleep(10)
        return httpx.Response(200)

    analyzer = build(lambda r: html_page(html), hang, default_timeout=0.3, global_limit=1)
    loop = asyncio.get_running_loop()
    started = loop.time()
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert loop.time() - started < 2
    assert err is None
    assert res.errors == []
    assert res.links_external == 4
    assert res.links_inaccessible == 4


@pytest.mark.asyncio
async def test_empty_body_is_not_an_error():
    analyzer = build(lambda r: httpx.Response(200, content=b""))
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert res.html_version == "unknown"
    assert res.headings == {"h1": 0, "h2": 0, "h3": 0, "h4": 0, "h5": 0, "h6": 0}


def test_effective_timeout():
    analyzer = build(lambda r: httpx.Response(200), default_timeout=30)
    assert analyzer.effective_timeout(AnalyzeParams(url="x")) == 30.0
    assert analyzer.effective_timeout(AnalyzeParams(url="x", fetch_timeout_seconds=5)) == 5.0
    assert analyzer.effective_timeout(AnalyzeParams(url="x", fetch_timeout_seconds=-1)) == 30.0


@pytest.mark.asyncio
async def test_links_to_private_addresses_are_not_contacted():
    html = '<html><body><a href="http://169.254.169.254/latest/meta-data">md</a><a href="/ok">ok</a></body></html>'
    probed = []

    def probe(request):
        probed.append(request.url.host)
        return httpx.Response(200)

    analyzer = build(
        lambda r: html_page(html),
        probe,
        resolver=make_resolver({"169.254.169.254": ["169.254.169.254"]}),
    )
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert probed == ["site.example"]
    assert res.links_external == 1
    assert res.links_inaccessible == 1


@pytest.mark.asyncio
async def test_doctype_only_body_is_not_an_error():
    analyzer = build(lambda r: html_page("<!DOCTYPE html>"))
    res, err = await analyzer.analyze(AnalyzeParams(url="https://site.example/"))

    assert err is None
    assert res.errors == []
    assert res.html_version == "HTML5"
