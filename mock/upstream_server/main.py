from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Patient Backend", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/upstream_stub") if os.path.exists("/upstream_stub") else Path(__file__).resolve().parents[2] / "upstream_stub"

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/api/patient/dashboard")
def get_dashboard(authorization: str | None = Header(default=None)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="not signed in")
    patient = authorization[len("Bearer "):].strip()
    file = DATA_DIR / f"dashboard_{patient}.json"
    if not file.exists():
        raise HTTPException(status_code=404, detail="patient not found")
    return JSONResponse(content=json.loads(file.read_text()))
