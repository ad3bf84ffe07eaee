import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from database import db, create_document, get_documents, get_document, update_document, delete_document
from schedule import compute_stats, day_bounds, project_today_schedule
from schemas import (
    CaregiverLink,
    Medication,
    MedicationCreate,
    MedicationOut,
    MedicationStats,
    MedicationUpdate,
    MedicationUsage,
    MedicationUsageOut,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SCHEDULE_REFRESH_SECONDS = int(os.getenv("SCHEDULE_REFRESH_SECONDS", 60))

app = FastAPI(title="Medication Schedule API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def read_root():
    return {"message": "Medication Schedule Backend Running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                logger.error("Listing collections failed: %s", e)
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        logger.error("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response

# Helper models
class UsageCreate(BaseModel):
    notes: Optional[str] = None

class ActiveToggle(BaseModel):
    is_active: bool

class ShareCreate(BaseModel):
    user_id: str
    medication_ids: Optional[List[str]] = None
    expires_at: Optional[datetime] = None


def _with_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["id"] = str(doc.pop("_id"))
    return doc


def _load_medication(medication_id: str) -> Dict[str, Any]:
    try:
        doc = get_document("medication", medication_id)
    except InvalidId:
        raise HTTPException(status_code=400, detail="Invalid medication id")
    if doc is None:
        raise HTTPException(status_code=404, detail="Medication not found")
    return _with_id(doc)


def _parse_now(at: Optional[str]) -> datetime:
    if not at:
        return datetime.now()
    try:
        parsed = datetime.fromisoformat(at)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid timestamp: {at}")
    # usage is stored as naive local time
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _fetch_medications(user_id: str, active: Optional[bool] = None) -> List[MedicationOut]:
    filt: Dict[str, Any] = {"user_id": user_id}
    if active is not None:
        filt["is_active"] = active
    docs = get_documents("medication", filt, sort=[("created_at", -1)])
    return [MedicationOut(**_with_id(d)) for d in docs]


def _fetch_usage_today(user_id: str, now: datetime) -> List[MedicationUsageOut]:
    start, end = day_bounds(now)
    filt = {"user_id": user_id, "taken_at": {"$gte": start, "$lt": end}}
    docs = get_documents("medicationusage", filt, sort=[("taken_at", 1)])
    return [MedicationUsageOut(**_with_id(d)) for d in docs]


def _fetch_usage_history(user_id: str, medication_ids: Optional[List[str]], limit: int) -> List[MedicationUsageOut]:
    filt: Dict[str, Any] = {"user_id": user_id}
    if medication_ids:
        filt["medication_id"] = {"$in": list(medication_ids)}
    docs = get_documents("medicationusage", filt, limit=limit, sort=[("taken_at", -1)])
    return [MedicationUsageOut(**_with_id(d)) for d in docs]

# Medication routes
@app.post("/api/medications", response_model=dict)
async def create_medication(payload: MedicationCreate):
    try:
        med_id = create_document("medication", payload)
        logger.info("Created medication %s for user %s", med_id, payload.user_id)
        return {"id": med_id}
    except Exception as e:
        logger.error("Error saving medication: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/medications", response_model=List[MedicationOut])
async def list_medications(user_id: str, active: Optional[bool] = None):
    try:
        return _fetch_medications(user_id, active)
    except Exception as e:
        logger.error("Error fetching medications: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

@app.put("/api/medications/{medication_id}", response_model=MedicationOut)
async def update_medication(medication_id: str, payload: MedicationUpdate):
    try:
        existing = _load_medication(medication_id)
        updates = payload.model_dump(exclude_unset=True)
        merged = {**existing, **updates}
        try:
            Medication(**merged)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])
        if updates:
            update_document("medication", medication_id, updates)
        return MedicationOut(**merged)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error updating medication %s: %s", medication_id, e)
        raise HTTPException(status_code=500, detail=str(e))

@app.patch("/api/medications/{medication_id}/active", response_model=MedicationOut)
async def toggle_medication_status(medication_id: str, payload: ActiveToggle):
    try:
        existing = _load_medication(medication_id)
        update_document("medication", medication_id, {"is_active": payload.is_active})
        existing["is_active"] = payload.is_active
        return MedicationOut(**existing)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error toggling medication status %s: %s", medication_id, e)
        raise HTTPException(status_code=500, detail=str(e))

@app.delete("/api/medications/{medication_id}", response_model=dict)
async def remove_medication(medication_id: str):
    try:
        deleted = delete_document("medication", medication_id)
    except InvalidId:
        raise HTTPException(status_code=400, detail="Invalid medication id")
    except Exception as e:
        logger.error("Error deleting medication %s: %s", medication_id, e)
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Medication not found")
    return {"deleted": medication_id}

# Usage log
@app.post("/api/medications/{medication_id}/usage", response_model=dict)
async def log_usage(medication_id: str, payload: UsageCreate):
    try:
        med = _load_medication(medication_id)
        if not med.get("is_active", True):
            raise HTTPException(status_code=400, detail="Medication is not active")
        usage = MedicationUsage(
            medication_id=medication_id,
            user_id=med["user_id"],
            taken_at=datetime.now(),
            notes=(payload.notes or "").strip() or None,
        )
        usage_id = create_document("medicationusage", usage)
        return {"id": usage_id, "taken_at": usage.taken_at.isoformat()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error logging usage for %s: %s", medication_id, e)
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/usage", response_model=List[MedicationUsageOut])
async def usage_history(user_id: str, medication_id: Optional[str] = None, limit: int = Query(50, ge=1, le=500)):
    try:
        return _fetch_usage_history(user_id, [medication_id] if medication_id else None, limit)
    except Exception as e:
        logger.error("Error fetching usage history: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

# Today's schedule, optionally evaluated at a given local timestamp
@app.get("/api/schedule/today")
async def get_today_schedule(user_id: str, at: Optional[str] = None):
    now = _parse_now(at)
    try:
        meds = _fetch_medications(user_id, active=True)
        usage = _fetch_usage_today(user_id, now)
    except Exception as e:
        logger.error("Error fetching today schedule: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    items = project_today_schedule(meds, usage, now)
    return {
        "date": now.date().isoformat(),
        "generated_at": now.isoformat(),
        "refresh_interval_seconds": SCHEDULE_REFRESH_SECONDS,
        "items": items,
    }

@app.get("/api/stats", response_model=MedicationStats)
async def get_stats(user_id: str, at: Optional[str] = None):
    now = _parse_now(at)
    try:
        meds = _fetch_medications(user_id)
        usage = _fetch_usage_today(user_id, now)
    except Exception as e:
        logger.error("Error fetching medication stats: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    items = project_today_schedule([m for m in meds if m.is_active], usage, now)
    return compute_stats(meds, items, usage)

# Caregiver share endpoints
@app.post("/api/share/create")
async def create_share_link(payload: ShareCreate):
    try:
        token = uuid.uuid4().hex[:12]
        link = CaregiverLink(
            token=token,
            user_id=payload.user_id,
            expires_at=payload.expires_at.isoformat() if payload.expires_at else None,
            medication_ids=payload.medication_ids,
        )
        create_document("caregiverlink", link)
        base = os.getenv("FRONTEND_URL") or os.getenv("PUBLIC_FRONTEND_URL") or ""
        return {"token": token, "url": f"{base}/?share={token}" if base else token}
    except Exception as e:
        logger.error("Error creating share link: %s", e)
        raise HTTPException(status_code=500, detail=str(e))


def _validate_share_token(token: str) -> Dict[str, Any]:
    try:
        links = get_documents("caregiverlink", {"token": token})
        if not links:
            raise HTTPException(status_code=404, detail="Share link not found")
        link = links[0]
        expires_at = link.get("expires_at")
        if expires_at:
            expiry = datetime.fromisoformat(expires_at)
            if expiry.tzinfo is None:
                expiry = expiry.replace(tzinfo=timezone.utc)
            if expiry < datetime.now(timezone.utc):
                raise HTTPException(status_code=410, detail="Share link expired")
        return link
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error validating share link: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/share/{token}/schedule")
async def shared_schedule(token: str, at: Optional[str] = None):
    link = _validate_share_token(token)
    allowed = set(link.get("medication_ids") or [])
    # reuse schedule logic
    sched = await get_today_schedule(link["user_id"], at)
    if allowed:
        sched["items"] = [i for i in sched["items"] if i.medication_id in allowed]
    return sched

@app.get("/api/share/{token}/usage", response_model=List[MedicationUsageOut])
async def shared_usage(token: str, medication_id: Optional[str] = None, limit: int = Query(50, ge=1, le=500)):
    link = _validate_share_token(token)
    allowed = set(link.get("medication_ids") or [])
    if allowed and medication_id and medication_id not in allowed:
        raise HTTPException(status_code=403, detail="Not permitted for this medication")
    medication_ids = [medication_id] if medication_id else sorted(allowed)
    try:
        return _fetch_usage_history(link["user_id"], medication_ids, limit)
    except Exception as e:
        logger.error("Error fetching shared usage: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
