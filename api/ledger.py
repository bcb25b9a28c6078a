"""
Ledger API Endpoints

職責：
1. 查詢帳戶餘額
2. 測試網水龍頭（為玩家帳戶入金）
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import FundRequest, AccountResponse
from adapters.ledger import account_balance, fund_account

router = APIRouter(prefix="/api/ledger", tags=["ledger"])
logger = logging.getLogger(__name__)


@router.get("/accounts/{address}", response_model=AccountResponse)
def get_account(address: str, db: Session = Depends(get_db)):
    """不存在的帳戶餘額視為 0"""
    try:
        return AccountResponse(address=address, balance=account_balance(db, address))
    except Exception as e:
        logger.error(f"Failed to get account: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/accounts/{address}/fund", response_model=AccountResponse)
def fund(address: str, fund_data: FundRequest, db: Session = Depends(get_db)):
    try:
        balance = fund_account(db, address, fund_data.amount)
        db.commit()
        return AccountResponse(address=address, balance=balance)

    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to fund account: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
