# repertoire_trainer/services/lichess_openings.py

import csv
import io
import logging
from typing import Iterable, List

import requests

from ..config import (
    HTTP_TIMEOUT_SECONDS, LICHESS_OPENINGS_BASE_URL, LICHESS_OPENINGS_VOLUMES, USER_AGENT,
)
from ..core.opening_manager import OpeningSpec, pgn_mainline_san
from ..errors import CollaboratorUnavailable, InvalidMoveSequenceError

logger = logging.getLogger(__name__)


def parse_openings_tsv(text: str) -> List[OpeningSpec]:
    """解析 lichess chess-openings 的 TSV（eco, name, pgn）。

    分類取名稱冒號前的開局家族，例如 "Sicilian Defense: Najdorf Variation"
    歸類為 "Sicilian Defense"。PGN 解析失敗的列會略過。
    """
    specs = []
    reader = csv.reader(io.StringIO(text), delimiter="\t")
    header = next(reader, None)
    if not header:
        return specs
    columns = {name.strip().lower(): i for i, name in enumerate(header)}
    try:
        eco_i, name_i, pgn_i = columns["eco"], columns["name"], columns["pgn"]
    except KeyError:
        logger.error(f"TSV 欄位不符: {header}")
        return specs

    for row in reader:
        if len(row) <= max(eco_i, name_i, pgn_i):
            continue
        eco, name, pgn = row[eco_i].strip(), row[name_i].strip(), row[pgn_i].strip()
        try:
            moves = pgn_mainline_san(pgn)
        except InvalidMoveSequenceError:
            logger.warning(f"略過無法解析的開局 '{name}': {pgn}")
            continue
        if not moves:
            continue
        specs.append(OpeningSpec(name=name, moves=moves, eco=eco or None,
                                 category=name.split(":", 1)[0].strip()))
    return specs


class LichessOpeningsClient:
    """
    從 lichess-org/chess-openings 下載開局資料集。
    每個分冊（a.tsv ~ e.tsv）對應一組 ECO 代碼。
    """
    BASE_URL = LICHESS_OPENINGS_BASE_URL

    def __init__(self, base_url: str = None, session: requests.Session = None):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.headers = {"User-Agent": USER_AGENT}

    def fetch_volume(self, volume: str) -> List[OpeningSpec]:
        url = f"{self.base_url}/{volume}.tsv"
        logger.info(f"下載開局資料: {url}")
        try:
            response = self.session.get(url, headers=self.headers, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"下載 {url} 失敗: {e}")
            raise CollaboratorUnavailable("lichess openings", str(e)) from e
        specs = parse_openings_tsv(response.text)
        logger.info(f"分冊 {volume} 解析出 {len(specs)} 個開局。")
        return specs

    def fetch_openings(self, volumes: Iterable[str] = LICHESS_OPENINGS_VOLUMES) -> List[OpeningSpec]:
        specs = []
        for volume in volumes:
            specs.extend(self.fetch_volume(volume))
        return specs
