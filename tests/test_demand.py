import json

import pytest

from darkstore_sim import demand, utils
from darkstore_sim.city import CITY_POLYGON, DEFAULT_HUB, SECTORS
from darkstore_sim.config import SimulationParameters
from darkstore_sim.models import DemandProfile, HotspotZone, RouteZone, SectorZone, UniformZone


def test_zone_active_window():
    zone = UniformZone(start_time=10, end_time=20)
    assert not zone.is_active(9)
    assert zone.is_active(10)
    assert zone.is_active(20)
    assert not zone.is_active(21)
    assert UniformZone(start_time=0).is_active(10_000)


def test_zone_weight():
    assert demand.zone_weight(UniformZone()) == 1.0
    assert demand.zone_weight(UniformZone(min_orders=10, max_orders=20)) == 15.0


def test_select_zone_honours_weights(rng):
    light = UniformZone(min_orders=1, max_orders=1)
    heavy = HotspotZone(min_orders=99, max_orders=99, center=DEFAULT_HUB)
    picks = [demand.select_zone([light, heavy], rng) for _ in range(500)]
    assert picks.count(heavy) > picks.count(light) * 10
    assert demand.select_zone([], rng) is None


def test_default_uniform_stays_in_city_and_radius(rng):
    params = SimulationParameters(uniform_order_radius_km=5.0)
    for _ in range(100):
        location = demand.sample_order_location("default_uniform", 0, DEFAULT_HUB, params, rng)
        assert utils.location_in_polygon(location, CITY_POLYGON)
        assert utils.get_distance(DEFAULT_HUB, location) <= 5.0 * 1.01


def test_default_focused_falls_back_to_hub_outside_polygon(rng):
    params = SimulationParameters(focused_order_radius_km=0.5)
    far_hub = (31.5, 77.5)
    assert demand.sample_order_location("default_focused", 0, far_hub, params, rng) == far_hub


def test_unknown_builtin_profile_yields_none(rng):
    assert demand.sample_order_location("nope", 0, DEFAULT_HUB, SimulationParameters(), rng) is None


def test_profile_without_active_zone_yields_none(rng):
    profile = DemandProfile("night", [UniformZone(start_time=100, end_time=200)])
    assert demand.sample_order_location(profile, 10, DEFAULT_HUB, SimulationParameters(), rng) is None


def test_sector_zone_with_unknown_sectors_is_malformed(rng):
    zone = SectorZone(sectors=["Sector 999"])
    assert demand.sample_zone_location(zone, DEFAULT_HUB, rng) is None


def test_sector_zone_samples_near_sector(rng):
    zone = SectorZone(sectors=["Sector 999", "Sector 17 (City Center)"])
    location = demand.sample_zone_location(zone, DEFAULT_HUB, rng)
    assert utils.get_distance(location, SECTORS["Sector 17 (City Center)"]) < 5.0


def test_hotspot_and_route_zones_inside_city(rng):
    hotspot = HotspotZone(center=DEFAULT_HUB, spread_km=1.0)
    route = RouteZone(points=[(30.72, 76.76), (30.74, 76.80)], spread_km=0.5)
    for zone in (hotspot, route):
        for _ in range(20):
            location = demand.sample_zone_location(zone, DEFAULT_HUB, rng)
            assert utils.location_in_polygon(location, CITY_POLYGON)


def test_zone_order_probability_clamped():
    assert demand.zone_order_probability(UniformZone(min_orders=30, max_orders=30)) == pytest.approx(0.5)
    assert demand.zone_order_probability(UniformZone(min_orders=120, max_orders=240)) == 1.0


def test_resolve_profile():
    lunch = DemandProfile("lunch", [UniformZone()])
    assert demand.resolve_profile("default_uniform") == "default_uniform"
    assert demand.resolve_profile("custom_lunch", [lunch]) is lunch
    assert demand.resolve_profile("lunch", [lunch]) is lunch
    assert demand.resolve_profile("custom_dinner", [lunch]) is None


def test_zone_from_dict_camel_case():
    zone = demand.zone_from_dict({
        "type": "hotspot", "centerLat": 30.74, "centerLng": 76.78,
        "spreadKm": 2, "minOrders": 5, "maxOrders": 15, "startTime": 30, "endTime": "inf",
    })
    assert isinstance(zone, HotspotZone)
    assert zone.center == (30.74, 76.78)
    assert zone.spread_km == 2.0
    assert zone.mean_rate == 10.0
    assert zone.end_time is None


def test_zone_from_dict_rejects_unknown_type():
    with pytest.raises(ValueError):
        demand.zone_from_dict({"type": "teleport"})


def test_load_profiles(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps({"profiles": [
        {"name": "lunch", "zones": [
            {"type": "sector", "selectedSectors": ["Sector 17 (City Center)"], "minOrders": 10, "maxOrders": 20},
            {"type": "route", "routePoints": [[30.72, 76.76], [30.74, 76.80]]},
        ]},
    ]}))
    profiles = demand.load_profiles(str(path))
    assert [p.name for p in profiles] == ["lunch"]
    assert [z.kind for z in profiles[0].zones] == ["sector", "route"]


def test_load_profiles_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        demand.load_profiles(str(path))


def test_load_profiles_rejects_non_object_entry(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps([{"name": "ok", "zones": []}, "oops"]))
    with pytest.raises(ValueError):
        demand.load_profiles(str(path))


def test_load_profiles_rejects_non_list_zones(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps([{"name": "ok", "zones": None}]))
    with pytest.raises(ValueError):
        demand.load_profiles(str(path))


def test_zone_entries_must_be_objects():
    with pytest.raises(ValueError):
        demand.profile_from_dict({"name": "lunch", "zones": [42]})


def test_parse_profiles_from_decoded_json():
    profiles = demand.parse_profiles([{"name": "lunch", "zones": [{"kind": "uniform"}]}])
    assert isinstance(profiles[0].zones[0], UniformZone)
    with pytest.raises(ValueError):
        demand.parse_profiles("lunch")


def test_zone_types_keyed_by_kind():
    assert set(demand.ZONE_TYPES) == {"uniform", "hotspot", "sector", "route"}
    for kind, zone_cls in demand.ZONE_TYPES.items():
        assert zone_cls.kind == kind
