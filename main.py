import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from config import Settings, configure_logging, get_settings
from database import Store, session_scope, upgrade_schema
from integrity import IntegrityAuditor
from legacy_import import LegacyImportService
from models import AccountKind
from periods import resolve_range_start
from scheduler import SchedulerManager
from schemas import AccountIn, AccountUpdateIn, BalanceIn, CategoryIn, ProfileIn
from services import (
    AccountService,
    CategoryService,
    ExportService,
    ImportFormatError,
    NetWorthService,
    NotFoundError,
    ProfileService,
    ReferentialIntegrityError,
    local_today,
)
from snapshots import regenerate_all_snapshots

logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db(request: Request):
    if not request.app.state.ready:
        raise HTTPException(status_code=503, detail="Database not ready")
    db = request.app.state.store.session()
    try:
        yield db
    finally:
        db.close()


def _error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ReferentialIntegrityError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _category_out(category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "kind": category.kind.value,
        "icon": category.icon,
        "color": category.color,
    }


def _snapshot_out(snapshot) -> dict[str, object]:
    return {
        "month": snapshot.month,
        "assets_total": snapshot.assets_total,
        "liabilities_total": snapshot.liabilities_total,
        "net_worth": snapshot.net_worth,
        "created_at": snapshot.created_at.isoformat(),
    }


def _profile_out(profile) -> dict[str, object]:
    if profile is None:
        return {}
    return {
        "user_name": profile.user_name,
        "spouse_name": profile.spouse_name,
        "user_color": profile.user_color,
        "spouse_color": profile.spouse_color,
    }


def initialize_store(store: Store) -> None:
    upgrade_schema(store)
    with session_scope(store) as session:
        CategoryService(session).seed_defaults()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Net Worth Tracker", version=APP_VERSION)
    app.state.settings = settings
    app.state.ready = False
    app.state.store = Store.open(settings)
    app.state.scheduler = SchedulerManager(app.state.store, settings)

    @app.on_event("startup")
    def startup_event():
        try:
            initialize_store(app.state.store)
            app.state.ready = True
            logger.info(f"startup: database ready url={settings.database_url}")
        except Exception:
            # Store or migration failure: stay up, API answers 503.
            logger.exception("startup: failed to initialize database")
            return
        app.state.scheduler.start()

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.scheduler.stop()
        app.state.store.dispose()

    @app.get("/api/health")
    def health():
        return {"ready": app.state.ready, "version": APP_VERSION}

    @app.get("/api/accounts")
    def list_accounts(db: Session = Depends(get_db)):
        return [asdict(acc) for acc in AccountService(db).list_with_details()]

    @app.post("/api/accounts", status_code=201)
    def create_account(data: AccountIn, db: Session = Depends(get_db)):
        try:
            account = AccountService(db, settings.timezone).create(data)
        except ValueError as exc:
            raise _error(exc) from exc
        return {"id": account.id}

    @app.put("/api/accounts/{account_id}")
    def update_account(
        account_id: int, data: AccountUpdateIn, db: Session = Depends(get_db)
    ):
        try:
            AccountService(db).update(account_id, data)
        except ValueError as exc:
            raise _error(exc) from exc
        return Response(status_code=204)

    @app.delete("/api/accounts/{account_id}")
    def delete_account(account_id: int, db: Session = Depends(get_db)):
        try:
            AccountService(db).delete(account_id)
        except ValueError as exc:
            raise _error(exc) from exc
        return Response(status_code=204)

    @app.get("/api/accounts/{account_id}/balances")
    def account_balances(account_id: int, db: Session = Depends(get_db)):
        try:
            balances = AccountService(db).balances(account_id)
        except ValueError as exc:
            raise _error(exc) from exc
        return [{"date": b.date.isoformat(), "value": b.value} for b in balances]

    @app.post("/api/accounts/{account_id}/balances")
    def update_balance(account_id: int, data: BalanceIn, db: Session = Depends(get_db)):
        try:
            balance = AccountService(db).update_balance(
                account_id, data.value, data.date or local_today(settings.timezone)
            )
        except ValueError as exc:
            raise _error(exc) from exc
        return {"id": balance.id, "date": balance.date.isoformat(), "value": balance.value}

    @app.get("/api/categories")
    def list_categories(db: Session = Depends(get_db)):
        return [_category_out(c) for c in CategoryService(db).list_all()]

    @app.post("/api/categories", status_code=201)
    def create_category(data: CategoryIn, db: Session = Depends(get_db)):
        try:
            category = CategoryService(db).create(data)
        except ValueError as exc:
            raise _error(exc) from exc
        return _category_out(category)

    @app.put("/api/categories/{category_id}")
    def update_category(
        category_id: int, data: CategoryIn, db: Session = Depends(get_db)
    ):
        try:
            category = CategoryService(db).update(category_id, data)
        except ValueError as exc:
            raise _error(exc) from exc
        return _category_out(category)

    @app.delete("/api/categories/{category_id}")
    def delete_category(category_id: int, db: Session = Depends(get_db)):
        try:
            CategoryService(db).delete(category_id)
        except ValueError as exc:
            raise _error(exc) from exc
        return Response(status_code=204)

    @app.get("/api/profile")
    def get_profile(db: Session = Depends(get_db)):
        return _profile_out(ProfileService(db).get())

    @app.put("/api/profile")
    def update_profile(data: ProfileIn, db: Session = Depends(get_db)):
        return _profile_out(ProfileService(db).update(data))

    @app.get("/api/snapshots")
    def monthly_snapshots(db: Session = Depends(get_db)):
        return [_snapshot_out(s) for s in NetWorthService(db).monthly_snapshots()]

    @app.get("/api/snapshots/{month}/categories")
    def category_snapshots(month: str, db: Session = Depends(get_db)):
        try:
            rows = NetWorthService(db).category_snapshots(month)
        except ValueError as exc:
            raise _error(exc) from exc
        return [
            {"category_id": r.category_id, "kind": r.kind.value, "total": r.total}
            for r in rows
        ]

    @app.get("/api/net-worth")
    def net_worth_summary(request: Request, db: Session = Depends(get_db)):
        try:
            start = resolve_range_start(
                request.query_params.get("range"), today=local_today(settings.timezone)
            )
        except ValueError as exc:
            raise _error(exc) from exc
        service = NetWorthService(db)
        summary = service.summary(start)
        summary["history"] = service.history(start)
        return summary

    @app.get("/api/breakdown/{kind}")
    def category_groups(kind: AccountKind, db: Session = Depends(get_db)):
        return NetWorthService(db).accounts_grouped_by_category(kind)

    @app.get("/api/breakdown")
    def asset_breakdown(db: Session = Depends(get_db)):
        return NetWorthService(db).asset_category_breakdown()

    @app.get("/api/export")
    def export_database(db: Session = Depends(get_db)):
        document = ExportService(db).export()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return Response(
            content=json.dumps(document, indent=2),
            media_type="application/json",
            headers={
                "Content-Disposition": f'attachment; filename="networth_export_{timestamp}.json"'
            },
        )

    @app.post("/api/import")
    def import_database(payload: Any = Body(...), db: Session = Depends(get_db)):
        try:
            summary = ExportService(db).import_document(payload)
        except ImportFormatError as exc:
            raise _error(exc) from exc
        return asdict(summary)

    @app.post("/api/import/legacy")
    def import_legacy(payload: Any = Body(...), db: Session = Depends(get_db)):
        try:
            result = LegacyImportService(db).import_payload(payload)
        except ImportFormatError as exc:
            raise _error(exc) from exc
        return asdict(result)

    @app.post("/api/admin/rebuild-snapshots")
    def rebuild_snapshots(db: Session = Depends(get_db)):
        months = regenerate_all_snapshots(db)
        return {"months": months}

    @app.post("/api/admin/audit")
    def run_audit():
        if not app.state.ready:
            raise HTTPException(status_code=503, detail="Database not ready")
        report = IntegrityAuditor(app.state.store).run()
        out = asdict(report)
        out["repaired"] = report.repaired
        return out

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=False)


if __name__ == "__main__":
    main()
