"""
Bureau Export Engine - FastAPI Application

Main entry point for the bureau export backend.

Architecture:
- SnapshotSource → SourceRow (typed, validated at the boundary)
- SourceRow → RowValidator → filters (opt-out, verification, consent)
- Surviving rows → IdentifierHasher + BureauRecordCodec → ReportingRecord
- ReportingRecords → content → SHA-256 → READY batch
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from .config import get_settings
from .database import init_db
from .routers import reporting_router, consents_router, scheduler_router

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and initialize database on startup."""
    # Raises ConfigurationError when the hashing secret is missing
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Bureau Export Engine",
    description="""
    Bureau Export Engine - Rental Payment Reporting

    Converts tenancy and payment records into a credit bureau export batch.

    ## Pipeline
    1. **Snapshot**: Fetch candidate rows for a month
    2. **Validation**: Required fields, field widths
    3. **Filtering**: Opt-out, verification status, consent
    4. **Encoding**: Pseudonymized records, fixed-width / CSV / JSON content
    5. **Finalize**: SHA-256 checksum, batch READY

    ## Key Principles
    - Batches are immutable once READY or FAILED
    - Downloads are rebuilt from stored records, never from live data
    - Raw tenant ids never leave the system; partners see HMAC references
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers
app.include_router(reporting_router)
app.include_router(consents_router)
app.include_router(scheduler_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


# For running with: python -m bureau_export.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
