import os
import sys

# 기본 디렉토리 설정
IF_FROZEN = getattr(sys, "frozen", False)
BASE_DIR = sys._MEIPASS if IF_FROZEN else os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 저장소 설정 (Tier P: 재시작 후에도 유지되는 JSON 파일)
DATA_DIR = os.getenv("CBT_DATA_DIR", os.path.join(os.path.expanduser("~"), ".timed_cbt"))
STORE_FILE = os.path.join(DATA_DIR, "storage.json")

# 문제 은행 (CSV: question, optionA, optionB, optionC, optionD, answer)
BANK_FILE = os.getenv("CBT_BANK_FILE", os.path.join(STATIC_DIR, "Questions.csv"))
MAX_BANK_SIZE = 5 * 1024 * 1024  # 업로드 최대 5 MB

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
DEFAULT_TIMEOUT = 15.0

# 마감 시각 점검 주기 (초)
TICK_INTERVAL = 1.0
