"""Tests for theme defaults, color helpers and the theme sampler."""

import asyncio
import io

import httpx
from PIL import Image

from conftest import mock_client
from bouchenator.core.config import FetchConfig
from bouchenator.core.models import ThemeSource
from bouchenator.intelligence.favicon_sampler import extract_color_from_svg, extract_dominant_color
from bouchenator.intelligence.style_sampler import extract_brand_colors, extract_font
from bouchenator.intelligence.theme import (
    DEFAULT_PRIMARY,
    default_theme,
    derive_accent,
    hex_to_rgb,
    is_brand_usable,
    is_usable_color,
    theme_from_name,
)
from bouchenator.intelligence.theme_sampler import ThemeSampler

BRANDED_HTML = """
<html>
  <head>
    <meta name="theme-color" content="#635bff">
    <link rel="icon" href="/static/favicon.png">
    <style>:root { --brand-color: #635bff; --accent-color: #00d4ff; font-family: "Inter", sans-serif; }</style>
  </head>
  <body><h1>Payments</h1></body>
</html>
"""


class TestColorHelpers:
    def test_hex_parsing(self):
        assert hex_to_rgb("#fff") == (255, 255, 255)
        assert hex_to_rgb("#2563eb") == (37, 99, 235)
        assert hex_to_rgb("nope") is None

    def test_near_white_and_near_black_are_not_usable(self):
        assert is_usable_color("#ffffff") is False
        assert is_usable_color("#000000") is False
        assert is_usable_color(DEFAULT_PRIMARY) is True

    def test_gray_is_usable_but_not_brand_usable(self):
        assert is_usable_color("#808080") is True
        assert is_brand_usable("#808080") is False

    def test_derived_accent_differs_from_primary(self):
        accent = derive_accent("#2563eb")

        assert accent != "#2563eb"
        assert is_usable_color(accent)


class TestThemeFromName:
    def test_same_name_gives_same_palette(self):
        assert theme_from_name("Stripe") == theme_from_name("Stripe")
        assert theme_from_name("  stripe ").primary == theme_from_name("Stripe").primary

    def test_different_names_usually_differ(self):
        primaries = {theme_from_name(name).primary for name in ("Stripe", "Linear", "Notion", "Figma")}

        assert len(primaries) > 1

    def test_palette_is_brand_usable_and_marked_default(self):
        for name in ("Acme", "Globex", "Initech", "Umbrella", "Hooli"):
            theme = theme_from_name(name)
            assert is_brand_usable(theme.primary)
            assert theme.source == ThemeSource.DEFAULT.value

    def test_blank_name_falls_back_to_default(self):
        assert theme_from_name("   ") == default_theme()


class TestStyleExtraction:
    def test_brand_variables_in_pattern_order(self):
        css = ":root{--primary-color:#635bff;--color-accent:#00d4ff;--brand-color:#ffffff}"

        assert extract_brand_colors(css) == ["#635bff", "#00d4ff"]

    def test_only_brand_style_variable_names_count(self):
        css = ":root{--theme-color:#e01b24;--color-theme:#00d4ff;--theme-bg:#635bff;--brand:#2563eb}"

        assert extract_brand_colors(css) == ["#2563eb"]

    def test_generic_fonts_are_skipped(self):
        assert extract_font("body{font-family: system-ui}") is None
        assert extract_font("--font-sans: 'Geist', sans-serif;") == "Geist"


class TestThemeSampler:
    def _sample(self, handler, theme_cache, url="https://acme.test/", name="Acme"):
        async def run():
            async with mock_client(handler) as client:
                sampler = ThemeSampler(client, cache=theme_cache)
                return await sampler.get_company_theme(url, name), sampler

        return asyncio.run(run())

    def test_site_css_theme_wins(self, theme_cache):
        def handler(request):
            if request.url.path == "/":
                return httpx.Response(200, text=BRANDED_HTML, headers={"content-type": "text/html"})
            return httpx.Response(404)

        theme, _ = self._sample(handler, theme_cache)

        assert theme.source == ThemeSource.SITE_CSS.value
        assert theme.primary == "#635bff"
        assert theme.font_family == "Inter"
        assert theme.company_name == "Acme"
        assert theme.radius_px == 12
        assert theme.favicon_url == "https://acme.test/static/favicon.png"

    def test_unreachable_site_gets_name_derived_palette_and_is_cached(self, theme_cache):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        theme, sampler = self._sample(handler, theme_cache)

        assert theme.source == ThemeSource.DEFAULT.value
        assert "name-derived" in theme.note
        assert theme.primary == theme_from_name("Acme").primary
        assert sampler.is_cached("https://acme.test/about")

    def test_missing_url_uses_name_palette(self, theme_cache):
        theme, _ = self._sample(lambda request: httpx.Response(500), theme_cache, url=None)

        assert theme.note.startswith("No website URL")
        assert theme.company_name == "Acme"

    def test_svg_favicon_color_when_site_css_has_none(self, theme_cache):
        html = '<html><head><link rel="icon" type="image/svg+xml" href="/icon.svg"></head><body></body></html>'

        def handler(request):
            if request.url.path == "/":
                return httpx.Response(200, text=html, headers={"content-type": "text/html"})
            if request.url.path == "/icon.svg":
                return httpx.Response(200, text=SVG_ICON, headers={"content-type": "image/svg+xml"})
            return httpx.Response(404)

        theme, _ = self._sample(handler, theme_cache)

        assert theme.source == ThemeSource.FAVICON.value
        assert theme.primary == "#E01B24"
        assert theme.note == "Extracted color from SVG favicon"
        assert theme.favicon_url == "https://acme.test/icon.svg"

    def test_raster_favicon_color(self, theme_cache):
        html = '<html><head><link rel="icon" type="image/png" href="/favicon.png"></head></html>'
        icon = _png([((0, 0, 32, 32), VIVID_RED)])

        def handler(request):
            if request.url.path == "/":
                return httpx.Response(200, text=html, headers={"content-type": "text/html"})
            if request.url.path == "/favicon.png":
                return httpx.Response(200, content=icon, headers={"content-type": "image/png"})
            return httpx.Response(404)

        theme, _ = self._sample(handler, theme_cache)

        assert theme.source == ThemeSource.FAVICON.value
        assert theme.primary == "#e01b24"

    def test_fetch_timeouts_come_from_config(self, theme_cache):
        html = ('<html><head><link rel="stylesheet" href="/site.css">'
                '<link rel="icon" type="image/png" href="/favicon.png"></head></html>')
        icon = _png([((0, 0, 32, 32), VIVID_RED)])
        timeouts = {}

        def handler(request):
            timeouts[request.url.path] = request.extensions["timeout"]["read"]
            if request.url.path == "/":
                return httpx.Response(200, text=html, headers={"content-type": "text/html"})
            if request.url.path == "/site.css":
                return httpx.Response(200, text="body { color: #333 }")
            return httpx.Response(200, content=icon, headers={"content-type": "image/png"})

        config = FetchConfig(FETCH_HOME_TIMEOUT=1.5, FETCH_STYLESHEET_TIMEOUT=2.5, FETCH_FAVICON_TIMEOUT=3.5)

        async def run():
            async with mock_client(handler) as client:
                sampler = ThemeSampler(client, cache=theme_cache, config=config)
                return await sampler.get_company_theme("https://acme.test/", "Acme")

        asyncio.run(run())

        assert timeouts == {"/": 1.5, "/site.css": 2.5, "/favicon.png": 3.5}


VIVID_RED = (224, 27, 36)
MUTED_BLUE = (95, 122, 148)
GRAY = (128, 128, 128)

SVG_ICON = '<svg xmlns="http://www.w3.org/2000/svg"><rect fill="#ffffff"/><path fill="#E01B24" d="M0 0h8v8z"/></svg>'


def _png(regions, size=32, background=GRAY):
    """PNG bytes filled with ``background`` and the given (box, color) regions."""
    image = Image.new("RGB", (size, size), background)
    for box, color in regions:
        image.paste(color, box)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class TestFaviconColors:
    def test_vivid_minority_beats_frequent_gray(self):
        data = _png([((0, 24, 32, 32), VIVID_RED)])

        assert extract_dominant_color(data) == VIVID_RED

    def test_saturation_outweighs_pixel_count_among_usable_colors(self):
        # 19 rows of a muted blue against 13 rows of red
        data = _png([((0, 0, 32, 19), MUTED_BLUE), ((0, 19, 32, 32), VIVID_RED)])

        assert is_brand_usable("#5f7a94")
        assert extract_dominant_color(data) == VIVID_RED

    def test_single_usable_color_is_returned(self):
        assert extract_dominant_color(_png([], background=MUTED_BLUE)) == MUTED_BLUE

    def test_transparent_and_undecodable_images(self):
        buffer = io.BytesIO()
        Image.new("RGBA", (16, 16), (224, 27, 36, 0)).save(buffer, format="PNG")

        assert extract_dominant_color(buffer.getvalue()) is None
        assert extract_dominant_color(b"not an image") is None

    def test_svg_skips_colors_that_are_not_brand_usable(self):
        assert extract_color_from_svg(SVG_ICON) == "#E01B24"
        assert extract_color_from_svg('<svg><path style="fill: #808080"/></svg>') is None
        assert extract_color_from_svg('<svg><stop stop-color="#00d4ff"/></svg>') == "#00d4ff"
