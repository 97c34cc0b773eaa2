from __future__ import annotations
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, uuid, typing as t
from contextlib import asynccontextmanager

# ---- Engine imports ----
from exam_core.audit_bank import audit_items
from exam_core.audit_export import to_json as trace_to_json, to_csv as trace_to_csv
from exam_core.config import load_config, make_rng, required_skills
from exam_core.engine import ExamSession, ResponseOutcome, reset_exposure
from exam_core.errors import BankFormatError, ExamError
from exam_core.estimator import AbilityEstimator
from exam_core.item_store import ItemStore
from exam_core.persistence import WriteQueue
from exam_core.question_bank import export_bank, load_bank, parse_csv_bank, parse_items, parse_json_bank
from exam_core.scoring import default_mapping, format_mapping, mapping_from_pairs, parse_mapping
from exam_core.types import CandidateState, Item, ScalePoint
from . import storage

log = logging.getLogger(__name__)

CFG = load_config()


def _load_store() -> ItemStore:
    records = storage.load_bank_records()
    if records is None:
        items = load_bank()
        storage.save_bank(export_bank(items))
    else:
        items = parse_items(records).items
    store = ItemStore(items)
    store.load_stats(storage.load_item_stats())
    return store


STORE = _load_store()
CANDIDATE = CandidateState(used_item_ids=set(storage.load_used_ids()))
WRITES = WriteQueue("item-stats")
ESTIMATOR = AbilityEstimator(STORE, persist=storage.save_item_stats, writes=WRITES)
SESS: dict[str, ExamSession] = {}
COMMITTED: set[str] = set()  # sids whose result is already in the history


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # drain queued stats writes before the process exits
    WRITES.close()


app = FastAPI(title="Adaptive Exam Trainer API", lifespan=lifespan)


@app.get("/")
def root():
    return {"status": "ok", "service": "adaptive-exam-trainer"}


ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    section: str                # "Quant" | "Verbal" | "Data Insights"
    policy: str | None = None   # "mst" | "theta" | "rolling"
    size: int | None = None
    minutes: float | None = None
    exposure_control: bool | None = None
    seed: int | None = None

class AnswerReq(BaseModel):
    index: int
    option: int

class FlagReq(BaseModel):
    index: int

class ReviewReq(BaseModel):
    open: bool = True

class TickReq(BaseModel):
    seconds: int = 1

class ImportReq(BaseModel):
    format: str = "json"        # "json" | "csv"
    content: str

class MappingReq(BaseModel):
    text: str

# ---- Helpers ----
def _session(sid: str) -> ExamSession:
    sess = SESS.get(sid)
    if not sess:
        raise HTTPException(404, "session not found")
    return sess


def _mapping() -> list[ScalePoint]:
    stored = storage.load_mapping()
    if stored:
        return mapping_from_pairs(stored)
    if CFG.get("scale_mapping"):
        return mapping_from_pairs(CFG["scale_mapping"])
    return default_mapping()


def _serialize_item(it: Item, index: int) -> dict[str, t.Any]:
    out: dict[str, t.Any] = {
        "index": index,
        "id": it.id,
        "section": it.section,
        "type": it.type,
        "difficulty": it.difficulty_tag,
        "skills": sorted(it.skills),
        "prompt": it.prompt,
        "options": list(it.options),
    }
    if it.table is not None:
        out["table"] = {"headers": it.table.headers, "rows": it.table.rows}
    return out


def _serialize_outcome(sess: ExamSession, out: ResponseOutcome) -> dict[str, t.Any]:
    start = len(sess.items) - len(out.served)
    return {
        "accepted": out.accepted,
        "edited": out.edited,
        "editsRemaining": out.edits_remaining,
        "newUserTheta": out.new_user_theta,
        "newDifficultyLabel": out.new_difficulty_label,
        "reason": out.reason,
        "served": [_serialize_item(it, start + i) for i, it in enumerate(out.served)],
        "state": sess.snapshot(),
    }


def _finish(sid: str, sess: ExamSession) -> dict[str, t.Any]:
    result = sess.submit()
    payload = result.to_dict()
    if sid not in COMMITTED:
        COMMITTED.add(sid)
        storage.prepend_history(payload)
        storage.save_used_ids(CANDIDATE.used_item_ids)
    return payload

# ---- Health / bank ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "items": len(STORE),
        "sessions": len(SESS),
        "stats_write_failures": WRITES.failures,
    }

@app.get("/bank/stats")
def bank_stats():
    return {"total": len(STORE), "sections": STORE.counts()}

@app.post("/bank/import")
def bank_import(req: ImportReq):
    fmt = req.format.strip().lower()
    existing = [it.id for it in STORE.items]
    try:
        if fmt == "csv":
            report = parse_csv_bank(req.content, existing)
        elif fmt == "json":
            report = parse_json_bank(req.content, existing)
        else:
            raise BankFormatError(f"unsupported import format {req.format!r}")
    except BankFormatError as exc:
        raise HTTPException(400, str(exc))
    added, _ = STORE.add_items(report.items)
    if added:
        storage.save_bank(export_bank(STORE.items))
    body = report.to_dict()
    body["total"] = len(STORE)
    return body

@app.get("/bank/export")
def bank_export():
    return export_bank(STORE.items)

@app.get("/bank/audit")
def bank_audit():
    return audit_items(STORE.items, CFG)

# ---- Session endpoints ----
@app.post("/session/start")
def start(req: StartReq):
    cfg = dict(CFG)
    if req.seed is not None:
        cfg["seed"] = req.seed
    # one candidate, one open section
    for old in [k for k, s in SESS.items() if not s.submitted]:
        SESS.pop(old, None)
    opts: dict[str, t.Any] = {}
    if req.exposure_control is not None:
        opts["exposure_control"] = req.exposure_control
    try:
        sess = ExamSession(
            req.section,
            STORE,
            CANDIDATE,
            policy=req.policy or cfg.get("policy"),
            size=req.size,
            minutes=req.minutes,
            estimator=ESTIMATOR,
            mapping=_mapping(),
            skills=required_skills(req.section, cfg),
            rng=make_rng(cfg),
            **opts,
        )
        served = sess.start()
    except (ExamError, ValueError) as exc:
        raise HTTPException(400, str(exc))
    sid = str(uuid.uuid4())
    SESS[sid] = sess
    return {
        "session_id": sid,
        "items": [_serialize_item(it, i) for i, it in enumerate(served)],
        "warnings": list(sess.warnings),
        "state": sess.snapshot(),
    }

@app.post("/session/{sid}/answer")
def answer(sid: str, req: AnswerReq):
    sess = _session(sid)
    try:
        out = sess.record_response(req.index, req.option)
    except (ExamError, ValueError) as exc:
        raise HTTPException(400, str(exc))
    return _serialize_outcome(sess, out)

@app.post("/session/{sid}/flag")
def flag(sid: str, req: FlagReq):
    sess = _session(sid)
    try:
        flagged = sess.toggle_flag(req.index)
    except ExamError as exc:
        raise HTTPException(400, str(exc))
    return {"index": req.index, "flagged": flagged}

@app.post("/session/{sid}/review")
def review(sid: str, req: ReviewReq):
    sess = _session(sid)
    try:
        if req.open:
            grid = sess.open_review()
        else:
            sess.return_to_questions()
            grid = sess.review_grid()
    except ExamError as exc:
        raise HTTPException(400, str(exc))
    return {"grid": grid, "state": sess.snapshot()}

@app.post("/session/{sid}/tick")
def tick(sid: str, req: TickReq):
    sess = _session(sid)
    fired = sess.tick(req.seconds)
    body: dict[str, t.Any] = {"fired": fired, "state": sess.snapshot()}
    if sess.submitted:
        body["result"] = _finish(sid, sess)
    return body

@app.post("/session/{sid}/submit")
def submit(sid: str):
    sess = _session(sid)
    try:
        return _finish(sid, sess)
    except ExamError as exc:
        raise HTTPException(400, str(exc))

# ---- History / exposure / mapping ----
@app.get("/history")
def history():
    return {"history": storage.load_history()}

@app.delete("/history")
def clear_history():
    return {"cleared": storage.clear_history()}

def _history_record(attempt_id: str) -> dict[str, t.Any]:
    rec = storage.find_history(attempt_id)
    if not rec:
        raise HTTPException(404, "attempt not found")
    return rec

@app.get("/history/{attempt_id}/trace.json")
def trace_json(attempt_id: str):
    rec = _history_record(attempt_id)
    return {"attempt_id": attempt_id, **trace_to_json(rec.get("trace") or [])}

@app.get("/history/{attempt_id}/trace.csv")
def trace_csv(attempt_id: str):
    rec = _history_record(attempt_id)
    body = trace_to_csv(rec.get("trace") or [])
    filename = f"{attempt_id}_trace.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )

@app.post("/exposure/reset")
def exposure_reset():
    n = reset_exposure(CANDIDATE)
    storage.save_used_ids(CANDIDATE.used_item_ids)
    return {"cleared": n}

@app.get("/scale-mapping")
def get_mapping():
    points = _mapping()
    return {"points": [{"pct": p.pct, "score": p.score} for p in points], "text": format_mapping(points)}

@app.put("/scale-mapping")
def put_mapping(req: MappingReq):
    try:
        points, errors = parse_mapping(req.text)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    storage.save_mapping([{"pct": p.pct, "score": p.score} for p in points])
    return {
        "points": [{"pct": p.pct, "score": p.score} for p in points],
        "errors": [{"line": n, "reason": why} for n, why in errors],
    }
