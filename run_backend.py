#!/usr/bin/env python3
"""
Runs the backend directly. Settings come from backend/.env (see backend/.env.example).
"""

import os
import sys
from pathlib import Path

backend_dir = Path(__file__).parent / "backend"
os.chdir(backend_dir)
sys.path.insert(0, str(backend_dir))

if __name__ == "__main__":
    import uvicorn
    from athena.main import app

    port = int(os.getenv("PORT", "8000"))
    print(f"Starting Athena backend on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port, reload=False)
