from fastapi import FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse
from typing import List, Optional
import logging

from import_state import ImportTracker
from models import ImportResult, ImportStatus, SleepLog
from repo_sleep import SleepLogRepo
from service_import import NOT_AUTHENTICATED, ImportService
from settings import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Nightlog Backend")

# Instantiate the repo + service here so the routes remain thin and
# replaceable for testing (tests swap `svc.repo` for an in-memory fake).
repo = SleepLogRepo()
svc = ImportService(repo)
tracker = ImportTracker()


def _unauthenticated() -> JSONResponse:
    result = ImportResult(success=False, errors=[NOT_AUTHENTICATED])
    return JSONResponse(status_code=401, content=result.model_dump())


@app.get("/health")
def health():
    try:
        svc.repo.ping()
        return {"ok": True}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"DB health check failed: {e}")


@app.post("/import", response_model=ImportResult)
def import_file(
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(default=None),
):
    # Identity comes from the auth layer in front of us; no header, no import.
    if not x_user_id:
        return _unauthenticated()

    cancel = tracker.begin(x_user_id)
    if cancel is None:
        raise HTTPException(status_code=409, detail="Import already in progress")

    result = ImportResult(success=False, errors=["Import failed"])
    try:
        result = svc.handle_file_upload(
            file.filename or "",
            file.file,
            x_user_id,
            total_bytes=file.size,
            on_progress=lambda percent: tracker.set_progress(x_user_id, percent),
            cancel=cancel,
        )
    finally:
        tracker.finish(x_user_id, result)
    return result


@app.get("/import/status", response_model=ImportStatus)
def import_status(x_user_id: Optional[str] = Header(default=None)):
    if not x_user_id:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    return tracker.status(x_user_id)


@app.post("/import/cancel")
def import_cancel(x_user_id: Optional[str] = Header(default=None)):
    if not x_user_id:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    return {"cancelled": tracker.cancel(x_user_id)}


@app.delete("/import/result")
def import_clear_result(x_user_id: Optional[str] = Header(default=None)):
    if not x_user_id:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    tracker.clear_result(x_user_id)
    return {"cleared": True}


@app.get("/sleep-logs", response_model=List[SleepLog])
def sleep_logs(
    limit: int = Query(30),
    x_user_id: Optional[str] = Header(default=None),
):
    if not x_user_id:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    limit = max(1, min(limit, settings.max_sleep_log_limit))
    try:
        return svc.repo.fetch_sleep_logs(x_user_id, limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Sleep log query failed: {e}")


@app.get("/ui", response_class=HTMLResponse)
def ui():
    return """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>Nightlog Sleep Import</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; }
    input, button { padding: 8px; }
    .row { padding: 10px; border: 1px solid #ddd; margin: 8px 0; border-radius: 8px; }
    .ok { color: #16a34a; }
    .err { color: #dc2626; }
  </style>
</head>
<body>
  <h2>Import sleep data</h2>
  <div>
    User: <input id="user" value="alex"/>
    <input id="file" type="file" accept=".csv,.json,.xml"/>
    <button onclick="upload()">Import</button>
    <button onclick="cancelImport()">Cancel</button>
  </div>
  <div id="status"></div>
  <div id="out"></div>

<script>
function headers(){
  return {'X-User-Id': document.getElementById('user').value};
}
async function poll(){
  const res = await fetch('/import/status', {headers: headers()});
  const s = await res.json();
  if (s.importing) {
    document.getElementById('status').innerText =
      s.progress > 0 ? `Scanning: ${s.progress}%` : 'Importing...';
    setTimeout(poll, 500);
  }
}
async function cancelImport(){
  await fetch('/import/cancel', {method:'POST', headers: headers()});
}
async function upload(){
  const input = document.getElementById('file');
  if (!input.files.length) return;
  const form = new FormData();
  form.append('file', input.files[0]);
  setTimeout(poll, 300);
  const res = await fetch('/import', {method:'POST', headers: headers(), body: form});
  const r = await res.json();
  document.getElementById('status').innerText = '';
  const out = document.getElementById('out');
  out.innerHTML = r.success
    ? `<div class="row ok">Imported ${r.imported} sleep entries</div>`
    : `<div class="row err">${(r.errors && r.errors[0]) || r.detail || 'Import failed'}` +
      `${r.errors && r.errors.length > 1 ? ` (+${r.errors.length - 1} more)` : ''}</div>`;
  await load();
}
async function load(){
  const res = await fetch('/sleep-logs?limit=14', {headers: headers()});
  if (!res.ok) return;
  const data = await res.json();
  const out = document.getElementById('out');
  data.forEach(l => {
    const div = document.createElement('div');
    div.className = 'row';
    div.innerText = `${l.date}  ${l.bedtime_actual || '--:--'} → ${l.wake_actual || '--:--'}` +
      `  (${l.sleep_duration_minutes ?? '?'} min${l.on_schedule ? ', on schedule' : ''})`;
    out.appendChild(div);
  });
}
</script>
</body>
</html>
"""
