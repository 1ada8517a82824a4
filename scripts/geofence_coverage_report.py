import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from routing.geofence import DEFAULT_SERVICE_AREA, evaluate

# Hand picked points around Tirupattur Bus Stand, with the outcome we expect
LANDMARKS = [
    ("Tirupattur Bus Stand (Center)", 12.4962, 78.5696, "available"),
    ("Within 2km radius", 12.5100, 78.5800, "available"),
    ("Within 5km radius", 12.5300, 78.5900, "available"),
    ("Outside 5km radius", 12.5500, 78.6100, "outside_service_area"),
    ("Far outside service area", 12.6000, 78.7000, "outside_service_area"),
]


def sample_customers(num_points=500, spread_deg=0.08, seed=None, service_area=DEFAULT_SERVICE_AREA):
    """
    Random customer points spread around the service area center.
    spread_deg is wider than the service box so some points land outside it.
    """
    rng = np.random.default_rng(seed)
    center_lat, center_lon = service_area.center
    return pd.DataFrame({
        "name": [f"sample_{i + 1}" for i in range(num_points)],
        "lat": np.round(center_lat + rng.uniform(-spread_deg, spread_deg, num_points), 6),
        "lon": np.round(center_lon + rng.uniform(-spread_deg, spread_deg, num_points), 6),
    })


def build_coverage_frame(points, shop_location, radius_km=None, service_area=DEFAULT_SERVICE_AREA):
    """
    Evaluates the geofence for every row of `points` (columns name, lat, lon).
    """
    rows = []
    for point in points.itertuples(index=False):
        result = evaluate(point.lat, point.lon, shop_location, radius_km=radius_km, service_area=service_area)
        rows.append({
            "name": point.name,
            "lat": point.lat,
            "lon": point.lon,
            "available": result.eligible,
            "distance_km": np.round(result.distance_km, 3) if result.distance_km is not None else np.nan,
            "reason": result.reason,
        })
    return pd.DataFrame(rows, columns=["name", "lat", "lon", "available", "distance_km", "reason"])


def landmark_frame():
    return pd.DataFrame(LANDMARKS, columns=["name", "lat", "lon", "expected"])


def main():
    parser = argparse.ArgumentParser(description="Delivery coverage report for one shop location.")
    parser.add_argument("--shop-lat", type=float, default=DEFAULT_SERVICE_AREA.center[0])
    parser.add_argument("--shop-lon", type=float, default=DEFAULT_SERVICE_AREA.center[1])
    parser.add_argument("--radius-km", type=float, default=None)
    parser.add_argument("--samples", type=int, default=500)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--output", default="geofence_coverage.csv")
    args = parser.parse_args()

    shop = (args.shop_lat, args.shop_lon)
    area = DEFAULT_SERVICE_AREA
    south, north, west, east = area.bounds

    print(f"Service area: {area.name}, max radius {area.max_radius_km}km")
    print(f"  North: {north:.4f}  South: {south:.4f}  East: {east:.4f}  West: {west:.4f}")

    landmarks = landmark_frame()
    checked = build_coverage_frame(landmarks, shop, radius_km=args.radius_km)
    checked["expected"] = landmarks["expected"]
    print("\nLandmarks:")
    for row in checked.itertuples(index=False):
        mark = "ok" if row.reason == row.expected else "MISMATCH"
        print(f"  [{mark}] {row.name}: {row.reason} ({row.distance_km}km)")

    report = build_coverage_frame(sample_customers(args.samples, seed=args.seed), shop, radius_km=args.radius_km)
    report.to_csv(args.output, index=False)

    print(f"\nSaved {len(report)} sampled points to '{args.output}'")
    print("\nCoverage by reason:")
    for reason, count in report["reason"].value_counts().items():
        print(f"  {reason}: {count} ({count / len(report):.0%})")


if __name__ == "__main__":
    main()
