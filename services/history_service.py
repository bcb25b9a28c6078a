"""
Draw history service.

Builds the ordered list of resolved rounds for a raffle so clients and
auditors can read the full record straight from the server.
"""
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from models import Draw


def get_draw_history(raffle_id: str, db: Session) -> List[Dict[str, Any]]:
    """
    Return every resolved round (round 1..N) of a raffle, oldest first.
    """
    draws = (
        db.query(Draw)
        .filter(Draw.raffle_id == raffle_id)
        .order_by(Draw.round_number)
        .all()
    )
    return [draw_to_dict(draw) for draw in draws]


def get_player_wins(raffle_id: str, player: str, db: Session) -> List[Dict[str, Any]]:
    """
    Return only the rounds the given player won.
    """
    draws = (
        db.query(Draw)
        .filter(Draw.raffle_id == raffle_id, Draw.winner == player)
        .order_by(Draw.round_number)
        .all()
    )
    return [draw_to_dict(draw) for draw in draws]


def draw_to_dict(draw: Draw) -> Dict[str, Any]:
    return {
        "round_number": draw.round_number,
        "request_id": draw.request_id,
        # uint256, keep as string for JSON clients
        "random_word": draw.random_word,
        "entrant_count": draw.entrant_count,
        "winner_index": draw.winner_index,
        "winner": draw.winner,
        "prize": draw.prize,
        "entrants": list(draw.entrants_snapshot),
        "resolved_at": draw.resolved_at,
    }
