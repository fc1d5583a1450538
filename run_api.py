"""
Device API Server - serves the legacy device protocol for milk analyzers

Devices address every endpoint through their organization's DB key:
- /api/<db_key>/FarmerInfo/GetLatestFarmerInfo
- /api/<db_key>/MachineCorrection/GetLatestMachineCorrection
- /api/<db_key>/MachineCorrection/SaveMachineCorrectionFromMachine
- /api/<db_key>/MachineCorrection/SaveMachineCorrectionUpdationHistory
- /api/<db_key>/MachinePassword/GetLatestMachinePassword
- /api/<db_key>/MachinePassword/UpdateMachinePasswordStatus
- /api/<db_key>/PriceChartUpdation/DownloadRateChart
- /api/<db_key>/MachineNewupdate/FromMachine
- /api/<db_key>/Machine/CloudTest

Usage:
    python run_api.py [--port 5021]
"""
import argparse
from dairylink import create_app

app = create_app()

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Run the DairyLink device API server')
    parser.add_argument('--host', default='0.0.0.0', help='Bind address')
    parser.add_argument('--port', type=int, default=5021, help='Port to listen on')
    parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
    args = parser.parse_args()

    print("=" * 60)
    print("DairyLink Device API Server")
    print("=" * 60)
    print(f"Starting on http://{args.host}:{args.port}")
    print("Device commands are read from the InputString parameter")
    print()
    print("Health check: GET /health")
    print("=" * 60)

    app.run(debug=args.debug, host=args.host, port=args.port)
