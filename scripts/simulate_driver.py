"""
Driver Simulation Smoke Test.

Drives a running server the way a driver's phone would:
1. Health Check
2. Start location sharing
3. Report positions along the route
4. Read the bus location back (next stop + ETA)
5. Stop sharing and check the trip log

Usage:
    python scripts/simulate_driver.py --driver-token <jwt> --admin-token <jwt> --bus-id 1
"""

import argparse
import sys
import time

import httpx

BASE_URL = "http://127.0.0.1:8000"

# Main Gate -> Library -> Engineering Block, roughly 25 m apart
PATH = [(12.9716 + i * 0.00022, 77.5946 + i * 0.00022) for i in range(20)]


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def main():
    parser = argparse.ArgumentParser(description="Simulate a driver sharing their bus location")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--driver-token", required=True)
    parser.add_argument("--admin-token")
    parser.add_argument("--bus-id", type=int, required=True)
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between reports")
    parser.add_argument("--speed", type=float, default=22.0, help="Reported speed in km/h")
    args = parser.parse_args()

    driver_headers = {"Authorization": f"Bearer {args.driver_token}"}

    print("🚀 Starting driver simulation...")

    with httpx.Client(base_url=args.base_url, timeout=10.0) as client:
        # 1. Health Check
        print_step("HEALTH", "Checking /health...")
        try:
            response = client.get("/health")
        except httpx.HTTPError as e:
            fail(f"Server not reachable: {e}")
        if response.status_code != 200:
            fail(f"Health check returned {response.status_code}")
        success("Server healthy")

        # 2. Start sharing
        print_step("START", f"Starting location sharing for bus {args.bus_id}...")
        response = client.post("/v1/locations/start", json={"busId": args.bus_id}, headers=driver_headers)
        if response.status_code == 409:
            print("ℹ️  Sharing already active, continuing with the open session")
        elif response.status_code != 200:
            fail(f"Start failed: {response.status_code} {response.text}")
        else:
            success(f"Sharing started, trip {response.json()['tripId']}")

        # 3. Report positions
        try:
            for i, (lat, lng) in enumerate(PATH, start=1):
                response = client.put("/v1/locations/update", json={
                    "busId": args.bus_id,
                    "latitude": lat,
                    "longitude": lng,
                    "speedKmh": args.speed,
                    "heading": 45,
                    "accuracyMeters": 8,
                }, headers=driver_headers)
                if response.status_code != 200:
                    fail(f"Update {i} failed: {response.status_code} {response.text}")

                location = response.json()["location"]
                next_stop = location["nextStop"]["name"] if location["nextStop"] else "-"
                print_step("UPDATE", f"{i:>2}/{len(PATH)} ({lat:.5f}, {lng:.5f}) next={next_stop} eta={location['formattedEta']}")
                time.sleep(args.interval)

            # 4. Read back
            response = client.get(f"/v1/locations/bus/{args.bus_id}")
            if response.status_code != 200:
                fail(f"Bus location read failed: {response.status_code}")
            success(f"Public view: {response.json()['location']['formattedEta']} to next stop")
        finally:
            # 5. Stop sharing
            print_step("STOP", "Stopping location sharing...")
            response = client.post("/v1/locations/stop", json={"busId": args.bus_id}, headers=driver_headers)
            if response.status_code != 200:
                fail(f"Stop failed: {response.status_code} {response.text}")

        trip_id = response.json()["tripId"]
        success(f"Sharing stopped, trip {trip_id} closed")

        if args.admin_token:
            response = client.get(
                f"/v1/trips/bus/{args.bus_id}",
                params={"limit": 1},
                headers={"Authorization": f"Bearer {args.admin_token}"}
            )
            trip = response.json()["trips"][0]
            success(f"Trip {trip['id']}: {trip['totalDistanceKm']} km in {trip['totalDurationMinutes']} min")

    print("\n🎉 Simulation completed successfully!")


if __name__ == "__main__":
    main()
