from datetime import timedelta

import pytest

from fakes import DAY
from seat_sampler.models import ProviderWindow
from seat_sampler.settings import Settings
from seat_sampler.windows import WindowPolicy
from seat_sampler.windows import normalize_name
from seat_sampler.windows import normalize_window


def test_every_configured_window_leaves_room_for_a_tick(settings: Settings):
    policy = WindowPolicy.from_settings(settings)

    for tag in list(settings.provider_windows) + ["unknown"]:
        window = policy.window_for(tag)
        assert window.span_seconds >= settings.tick_seconds + settings.window_margin_seconds


@pytest.mark.parametrize("tick_seconds,margin,expected", [(15, 15, 60), (60, 15, 75), (120, 30, 150)])
def test_min_window_span(tmp_path, tick_seconds, margin, expected):
    s = Settings(db_path=tmp_path / "x.db", tick_seconds=tick_seconds, window_margin_seconds=margin)

    assert s.min_window_span == expected


def test_narrow_window_is_widened_at_the_end():
    policy = WindowPolicy(
        provider_windows={"narrow": ProviderWindow(window_start_sec=-30, window_end_sec=-20)},
        default_window=ProviderWindow(window_start_sec=0, window_end_sec=600),
        min_span=75,
    )

    window = policy.window_for("narrow")

    assert window.window_start_sec == -30
    assert window.window_end_sec == 45


def test_wide_window_is_untouched():
    window = ProviderWindow(window_start_sec=-435, window_end_sec=0)

    assert normalize_window(window, 60) == window


def test_unknown_provider_gets_default_window(settings: Settings):
    policy = WindowPolicy.from_settings(settings)

    assert policy.window_for("nobody") == settings.default_window


def test_venue_window_precedence(settings: Settings):
    venue = ProviderWindow(window_start_sec=-600, window_end_sec=-120)
    provider_override = ProviderWindow(window_start_sec=300, window_end_sec=900)
    policy = WindowPolicy(
        provider_windows=settings.provider_windows,
        default_window=settings.default_window,
        min_span=60,
        venue_windows={"Cinéma Beaubien": venue},
    )

    assert policy.window_for("cineplex", "  cinema   BEAUBIEN ", provider_override) == venue
    assert policy.window_for("cineplex", "Cinéma du Parc", provider_override) == provider_override
    assert policy.window_for("cineplex", "Cinéma du Parc") == settings.provider_windows["cineplex"]


def test_bounds_are_offsets_from_start(settings: Settings):
    policy = WindowPolicy.from_settings(settings)
    start = DAY + timedelta(hours=2)

    window_start, window_end = policy.bounds(policy.window_for("cineentreprise"), start)

    assert window_start == start - timedelta(minutes=7, seconds=15)
    assert window_end == start


def test_normalize_name():
    assert normalize_name("  Cinéma   Beaubien ") == "cinema beaubien"
    assert normalize_name("") == ""
