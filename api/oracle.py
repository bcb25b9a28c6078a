"""
Oracle API Endpoints（本地 VRF Coordinator）

職責：
1. 查詢隨機數請求
2. 投遞隨機數（觸發 Raffle 的開獎回呼）
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List
import logging

from schemas import FulfillRequest, RandomnessRequestResponse, DrawResponse
from core.exceptions import (
    RaffleNotFound,
    UnknownRequest,
    InvalidRandomWords,
    RaffleInvariantViolation,
    TransferFailed,
)
from services.history_service import draw_to_dict
from api.deps import get_oracle

router = APIRouter(prefix="/api/oracle", tags=["oracle"])
logger = logging.getLogger(__name__)


def _request_response(request) -> RandomnessRequestResponse:
    return RandomnessRequestResponse(
        request_id=request.request_id,
        consumer=request.consumer,
        key_hash=request.key_hash,
        subscription_id=request.subscription_id,
        request_confirmations=request.request_confirmations,
        callback_gas_limit=request.callback_gas_limit,
        num_words=request.num_words,
        fulfilled=request.fulfilled,
        random_words=request.random_words,
    )


@router.get("/requests", response_model=List[RandomnessRequestResponse])
def list_pending_requests(oracle=Depends(get_oracle)):
    """尚未投遞的請求"""
    try:
        return [_request_response(r) for r in oracle.pending_requests()]
    except Exception as e:
        logger.error(f"Failed to list requests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/requests/{request_id}", response_model=RandomnessRequestResponse)
def get_request(request_id: int, oracle=Depends(get_oracle)):
    try:
        return _request_response(oracle.get_request(request_id))

    except UnknownRequest as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/requests/{request_id}/fulfill", response_model=DrawResponse)
def fulfill_request(
    request_id: int,
    fulfill_data: FulfillRequest,
    oracle=Depends(get_oracle),
):
    """
    投遞隨機數給 consumer

    參數：
        random_words: 可選；未指定時由 request id 推導（可重算）

    返回：
        該回合的開獎紀錄

    注意：
        - 派彩失敗時整個回呼 rollback，請求維持未投遞，可以重試
    """
    try:
        draw = oracle.fulfill(request_id, fulfill_data.random_words)
        return draw_to_dict(draw)

    except UnknownRequest as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidRandomWords, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransferFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except RaffleInvariantViolation as e:
        logger.error(f"Invariant violated while fulfilling {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to fulfill request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
