from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter, Depends

from ...core.settings import Settings, get_settings


router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthcheck(settings: Settings = Depends(get_settings)):
    directories = {
        "inputDir": Path(settings.input_dir).is_dir(),
        "outputDir": Path(settings.output_dir).is_dir(),
        "targetsDir": Path(settings.targets_dir).is_dir(),
    }
    # the output directory is created on first write
    ready = directories["inputDir"]
    return {
        "status": "ok" if ready else "degraded",
        "service": "sapflow",
        "version": os.getenv("APP_VERSION", "dev"),
        "directories": directories,
    }
