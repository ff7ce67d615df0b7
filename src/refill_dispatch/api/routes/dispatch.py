"""Dispatch endpoints: direct low-supply reports and the scheduled sweep."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...exceptions import InvalidCoordinates, MachineNotFound, NoKitchenAvailable
from ...schemas.dispatch import DispatchResponse, LowSupplyReport, SweepResponse
from ...services.dispatch.service import DispatchEngine
from ...services.dispatch.sweep import DispatchSweep
from ..dependencies import get_dispatch_engine, get_dispatch_sweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.post("/low-supply", response_model=DispatchResponse, status_code=status.HTTP_200_OK)
def low_supply(payload: LowSupplyReport, engine: DispatchEngine = Depends(get_dispatch_engine)) -> DispatchResponse:
    try:
        result = engine.on_low_supply(payload.machine_id, payload.supply_level)
    except MachineNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidCoordinates as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NoKitchenAvailable as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error dispatching machine {payload.machine_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to dispatch machine: {str(exc)}",
        ) from exc
    return DispatchResponse.from_result(result)


@router.post("/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
def sweep(runner: DispatchSweep = Depends(get_dispatch_sweep)) -> SweepResponse:
    """Scheduled trigger: one OrderReady request per active machine."""
    try:
        summary = runner.run()
    except Exception as exc:
        logger.exception(f"Error running dispatch sweep: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run dispatch sweep: {str(exc)}",
        ) from exc
    return SweepResponse.from_summary(summary)
