"""
開獎服務：由隨機數決定得獎者，並提供稽核驗證

純計算邏輯，不負責狀態轉換。

選號方式：winner_index = random_word mod entrant_count
當 entrant_count 無法整除隨機數的值域（2**256）時會有極小的偏差，
這是刻意接受的行為。
"""
import hashlib
from typing import Any, Dict, List, Sequence

from core.exceptions import (
    DrawVerificationFailed,
    InvalidRandomWords,
    RaffleInvariantViolation,
)

UINT256_MAX = 2**256 - 1


def derive_random_words(request_id: int, num_words: int) -> List[int]:
    """
    由 request id 推導隨機數（本地 Coordinator 使用）

    word_i = SHA-256("{request_id}:{i}") 轉成整數

    任何人都可以用同樣的 request id 重算，結果是確定的。
    """
    words = []
    for i in range(num_words):
        digest = hashlib.sha256(f"{request_id}:{i}".encode("utf-8")).hexdigest()
        words.append(int(digest, 16))
    return words


def pick_winner_index(random_word: int, entrant_count: int) -> int:
    """
    計算得獎者的位置

    參數：
        random_word: Oracle 回傳的第一個隨機數（uint256）
        entrant_count: 參與名額數

    返回：
        0 <= index < entrant_count

    異常：
        InvalidRandomWords: 隨機數不是 uint256
        RaffleInvariantViolation: 沒有參與者

    範例：
        pick_winner_index(7, 1) -> 0
        pick_winner_index(7, 3) -> 1
    """
    if random_word < 0 or random_word > UINT256_MAX:
        raise InvalidRandomWords(f"Random word out of uint256 range: {random_word}")
    if entrant_count <= 0:
        raise RaffleInvariantViolation("Cannot pick a winner from zero entrants")
    return random_word % entrant_count


def verify_draw(
    random_word: int,
    entrants: Sequence[str],
    winner_index: int,
    winner: str,
) -> Dict[str, Any]:
    """
    重新計算一次開獎，確認紀錄與計算結果一致

    參數：
        random_word: 紀錄中的隨機數
        entrants: 開獎當下的參與者快照（依加入順序）
        winner_index: 紀錄中的得獎位置
        winner: 紀錄中的得獎者

    返回：
        驗證結果 dict

    異常：
        DrawVerificationFailed: 任一項不一致
    """
    index = pick_winner_index(random_word, len(entrants))
    if index != winner_index:
        raise DrawVerificationFailed(
            f"Winner index mismatch: recorded={winner_index} recomputed={index}"
        )
    if entrants[index] != winner:
        raise DrawVerificationFailed(
            f"Winner mismatch: recorded={winner} recomputed={entrants[index]}"
        )

    return {
        "ok": True,
        "random_word": str(random_word),
        "entrant_count": len(entrants),
        "winner_index": index,
        "winner": winner,
    }
