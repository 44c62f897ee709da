from ride_telemetry.cli import main

main()
