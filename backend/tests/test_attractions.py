import pytest
import requests

from conftest import FakeSession, SF_LA_BOUNDS, google_status, place, places_ok
from tripwise.core.errors import InvalidError, UnconfiguredError
from tripwise.schemas.trip import BoundingBox, Coordinate, Route
from tripwise.services.attractions import (
    MAX_RESULTS, MAX_SEARCH_RADIUS_M, MIN_RATING, MIN_ROUTE_RADIUS_M, PLACES_API_URL,
    AttractionLocator, haversine_m, primary_type, search_area,
)

CENTER = Coordinate(lat=36.0, lng=-120.5)


def box(south, west, north, east):
    return BoundingBox(
        northeast=Coordinate(lat=north, lng=east),
        southwest=Coordinate(lat=south, lng=west),
    )


def test_haversine_known_distance():
    paris = Coordinate(lat=48.8566, lng=2.3522)
    london = Coordinate(lat=51.5074, lng=-0.1278)

    assert haversine_m(paris, london) == pytest.approx(343_500, rel=0.01)


@pytest.mark.parametrize("bounds, expected", [
    (box(36.0, -120.5, 36.01, -120.49), MIN_ROUTE_RADIUS_M),
    (BoundingBox.model_validate(SF_LA_BOUNDS), MAX_SEARCH_RADIUS_M),
])
def test_search_radius_is_clamped(bounds, expected):
    _, radius = search_area(bounds)

    assert radius == expected


def test_search_area_scales_with_diagonal():
    bounds = box(36.0, -120.5, 36.5, -120.0)

    center, radius = search_area(bounds)

    assert center == Coordinate(lat=36.25, lng=-120.25)
    assert radius == round(haversine_m(bounds.southwest, bounds.northeast) / 1.8)
    assert MIN_ROUTE_RADIUS_M <= radius <= MAX_SEARCH_RADIUS_M


def test_primary_type_skips_generic_tags():
    assert primary_type(["point_of_interest", "art_gallery", "establishment"]) == "art gallery"
    assert primary_type(["establishment"]) == "establishment"
    assert primary_type(None) is None


def test_near_coordinate_filters_low_rated_and_closed_places(settings):
    session = FakeSession({PLACES_API_URL: places_ok([
        place("Good Museum", "good", rating=4.2),
        place("Threshold Park", "edge", rating=MIN_RATING, types=["park"]),
        place("Bad Diner", "bad", rating=3.4),
        place("Unrated Spot", "unrated", rating=None),
        place("Shut Museum", "shut", status="CLOSED_PERMANENTLY"),
        place("Good Museum", "good", rating=4.2),
    ])})

    attractions = AttractionLocator(settings, session).near_coordinate(CENTER, 20_000)

    assert [a.place_id for a in attractions] == ["good", "edge"]
    assert all(a.rating >= MIN_RATING for a in attractions)
    assert attractions[0].description == "Main St"
    params = session.calls_to(PLACES_API_URL)[0]
    assert params["location"] == "36.0,-120.5"
    assert params["radius"] == "20000"
    assert params["keyword"] == settings.ATTRACTION_KEYWORD
    # Places falls back to the Maps key.
    assert params["key"] == "maps-key"


def test_near_coordinate_caps_results(settings):
    many = [place(f"Spot {i}", f"id-{i}") for i in range(MAX_RESULTS + 5)]
    session = FakeSession({PLACES_API_URL: places_ok(many)})

    attractions = AttractionLocator(settings, session).near_coordinate(CENTER, 20_000)

    assert len(attractions) == MAX_RESULTS


def test_description_falls_back_to_types(settings):
    session = FakeSession({PLACES_API_URL: places_ok([
        place("Hill", "hill", types=["natural_feature", "establishment"], vicinity=None),
    ])})

    attraction = AttractionLocator(settings, session).near_coordinate(CENTER, 20_000)[0]

    assert attraction.description == "natural feature"


def test_zero_results_is_an_empty_list(settings):
    session = FakeSession({PLACES_API_URL: google_status("ZERO_RESULTS")})

    assert AttractionLocator(settings, session).near_coordinate(CENTER, 20_000) == []


@pytest.mark.parametrize("radius", [0, -5, MAX_SEARCH_RADIUS_M + 1])
def test_radius_out_of_range_is_invalid(settings, radius):
    session = FakeSession()

    with pytest.raises(InvalidError):
        AttractionLocator(settings, session).near_coordinate(CENTER, radius)
    assert session.calls == []


def test_missing_key_fails_before_any_request(unconfigured_settings):
    session = FakeSession()

    with pytest.raises(UnconfiguredError):
        AttractionLocator(unconfigured_settings, session).near_coordinate(CENTER, 20_000)
    assert session.calls == []


def route_with(bounds=None, path=None):
    return Route(path=path if path is not None else [CENTER], distance_meters=1, duration_seconds=1, bounds=bounds)


def test_near_route_searches_around_bounds(settings):
    session = FakeSession({PLACES_API_URL: places_ok([place("Pier", "pier")])})

    attractions = AttractionLocator(settings, session).near_route(route_with(bounds=box(35.5, -121.0, 36.5, -120.0)))

    assert [a.name for a in attractions] == ["Pier"]
    assert session.calls_to(PLACES_API_URL)[0]["location"] == "36.0,-120.5"


def test_near_route_without_bounds_uses_path_midpoint(settings):
    session = FakeSession({PLACES_API_URL: places_ok([])})
    path = [Coordinate(lat=1, lng=1), Coordinate(lat=2, lng=2), Coordinate(lat=3, lng=3)]

    assert AttractionLocator(settings, session).near_route(route_with(path=path)) == []
    params = session.calls_to(PLACES_API_URL)[0]
    assert params["location"] == "2.0,2.0"
    assert params["radius"] == "20000"


def test_near_route_without_geometry_makes_no_request(settings):
    session = FakeSession()

    assert AttractionLocator(settings, session).near_route(route_with(path=[])) == []
    assert session.calls == []


@pytest.mark.parametrize("failure", [
    google_status("OVER_QUERY_LIMIT"),
    google_status("REQUEST_DENIED"),
    requests.Timeout("timed out"),
])
def test_near_route_degrades_to_empty_list(settings, failure):
    session = FakeSession({PLACES_API_URL: failure})

    assert AttractionLocator(settings, session).near_route(route_with(bounds=box(35.5, -121.0, 36.5, -120.0))) == []


def test_near_route_propagates_missing_key(unconfigured_settings):
    with pytest.raises(UnconfiguredError):
        AttractionLocator(unconfigured_settings, FakeSession()).near_route(route_with(bounds=box(35.5, -121.0, 36.5, -120.0)))
