"""
Keepsake - Archive and restore service for notes, tasks and finance records
FastAPI app served by uvicorn
"""

import os

import uvicorn

from app.main import app


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    print("Keepsake starting...")
    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", 8080)))
