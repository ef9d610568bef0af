"""Word-cloud data from resident messages."""
import re
from collections import Counter
from typing import Iterable, List

from residentpulse.extensions import db
from residentpulse.models import Message, SurveySession
from residentpulse.models.session import ROLE_USER
from .scoping import get_round

TOP_N = 60
MIN_LENGTH = 3

_NON_WORD = re.compile(r"[^a-z\s'-]")

STOP_WORDS = frozenset("""
the a an and or but in on at to for of with by from is are was were be been being have has had
do does did will would could should may might can shall not no nor so if than that this these those
it its i me my we us our you your he she they them their what which who whom when where why how
all each every both few more most other some such very just also about up out into over after before
between under again then here there once during while too only own same as any well really much
still even back get got go going went come came make made take took know think thing things said say
like don doesn didn won wouldn couldn shouldn isn aren wasn weren hasn haven hadn let one two lot
something anything everything nothing someone anyone everyone yeah yes okay sure right good great bad
need want time way because since through down around
management board property community association hoa condo company manager member members resident
residents building score nps survey interview feedback
""".split())


def tokenize(text: str) -> List[str]:
    words = _NON_WORD.sub(" ", (text or "").lower()).split()
    return [w for w in words if len(w) >= MIN_LENGTH and w not in STOP_WORDS]


def compute_live_word_frequencies(texts: Iterable[str]) -> List[dict]:
    """Top words by count; ties keep first-seen order."""
    counts = Counter()
    for text in texts:
        counts.update(tokenize(text))
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [{"word": w, "count": c} for w, c in ranked[:TOP_N]]


def round_user_messages(client_id: int, round_id: int) -> List[str]:
    rows = (
        db.session.query(Message.content)
        .join(SurveySession, SurveySession.id == Message.session_id)
        .filter(
            SurveySession.round_id == round_id,
            SurveySession.client_id == client_id,
            Message.role == ROLE_USER,
        )
        .order_by(Message.created_at, Message.id)
        .all()
    )
    return [r[0] for r in rows]


def generate_word_frequencies(client_id: int, round_id: int) -> List[dict]:
    r = get_round(client_id, round_id)
    freqs = compute_live_word_frequencies(round_user_messages(client_id, round_id))
    r.word_frequencies = freqs
    db.session.commit()
    return freqs
