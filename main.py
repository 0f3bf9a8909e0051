# main.py

# -*- coding: utf-8 -*-
import argparse
import logging
import sys

# 使用絕對導入，從專案根目錄開始
from repertoire_trainer.config import LOG_FORMAT, LOG_LEVEL
from repertoire_trainer.core.lines import CustomLine, OpeningLine
from repertoire_trainer.core.move_judge import SubmittedMove
from repertoire_trainer.core.opening_manager import OpeningManager
from repertoire_trainer.core.practice_service import (
    MODE_CUSTOM, MODE_OPENING, MODE_STACK, PracticeService,
)
from repertoire_trainer.core.practice_session import PracticeSession
from repertoire_trainer.database.database import init_db
from repertoire_trainer.errors import TrainerError
from repertoire_trainer.services.lichess_openings import LichessOpeningsClient


def setup_logging():
    """設定全域日誌記錄器。"""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    # 可以為特定模組設定不同的日誌級別
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="repertoire-trainer", description="開局記憶練習")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="建立資料庫表格")

    imp = sub.add_parser("import-openings", help="從 Lichess 開局資料集匯入目錄")
    imp.add_argument("--volume", action="append", help="只匯入指定分冊 (a~e)，可重複")

    stats = sub.add_parser("stats", help="顯示練習統計")
    stats.add_argument("--user", default="default_user")

    practice = sub.add_parser("practice", help="在終端機練習")
    practice.add_argument("--user", default="default_user")
    source = practice.add_mutually_exclusive_group(required=True)
    source.add_argument("--opening", type=int)
    source.add_argument("--custom", type=int)
    source.add_argument("--stack", type=int)
    practice.add_argument("--variation", type=int)
    practice.add_argument("--color", choices=["white", "black"], default="white")
    practice.add_argument("--rounds", type=int, default=10)
    return parser


def run_practice(args) -> int:
    service = PracticeService()
    user = service.opening_manager.get_or_create_user(args.user)
    if args.stack is not None:
        mode, reference = MODE_STACK, args.stack
    elif args.custom is not None:
        mode, reference = MODE_CUSTOM, CustomLine(args.custom)
    else:
        mode, reference = MODE_OPENING, OpeningLine(args.opening, args.variation, args.color)

    session = PracticeSession(service, user.id, mode, reference)
    session.position_ready.connect(lambda p: print(
        f"\n[{p.line_display_name}] 第 {p.ply + 1} 手\n  已走: {' '.join(p.preceding_moves) or '(開局)'}\n  FEN: {p.position}"
    ))
    session.nothing_to_practice.connect(lambda ref: print(f"{ref} 沒有可練習的局面，請選擇其他路線。"))
    session.error_occurred.connect(lambda msg: print(f"發生錯誤，請稍後再試: {msg}"))
    session.attempt_judged.connect(lambda r: print(
        "非法走法，請再試一次。" if not r.accepted
        else "答對！" if r.correct
        else f"錯誤！正確走法: {r.expected_move_if_wrong}"
    ))

    for _ in range(args.rounds):
        if session.next_position() is None:
            break
        while True:
            text = input("你的走法 (例如 g1f3，直接 Enter 跳過): ").strip()
            if not text:
                break
            try:
                move = SubmittedMove.from_uci(text)
            except ValueError as e:
                print(e)
                continue
            result = session.submit(move)
            if result is None or result.accepted:
                break
    print(f"\n本次練習: {session.correct}/{session.attempts} 正確")
    return 0


def show_stats(args) -> int:
    service = PracticeService()
    user = service.opening_manager.get_or_create_user(args.user)
    summary = service.progress_summary(user.id)
    print(f"總作答 {summary.total_attempts} 次，答對率 {summary.overall_accuracy}%，連續練習 {summary.current_streak} 天")
    for line in summary.lines:
        print(f"  {line.line_key}: {line.correct_attempts}/{line.total_attempts} ({line.accuracy}%)")
    due = service.due_reviews(user.id)
    print(f"待複習局面: {len(due)} 個")
    return 0


def main(argv=None):
    # 1. 初始化日誌
    setup_logging()
    args = build_parser().parse_args(argv)

    # 2. 初始化資料庫 (如果不存在，則建立)
    logging.info("正在初始化資料庫...")
    init_db()
    logging.info("資料庫初始化完成。")

    try:
        if args.command == "import-openings":
            client = LichessOpeningsClient()
            specs = client.fetch_openings(args.volume) if args.volume else client.fetch_openings()
            added = OpeningManager().import_openings(specs)
            print(f"已匯入 {added} 個開局。")
        elif args.command == "practice":
            return run_practice(args)
        elif args.command == "stats":
            return show_stats(args)
    except TrainerError as e:
        logging.error(f"執行失敗: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
