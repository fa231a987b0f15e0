"""배치 작업 트리거 CLI.

외부 스케줄러(cron, CI 등)에서 서명 헤더를 붙여 크론 엔드포인트를 호출한다.

사용법:
    questchat-trigger prompt|rollover|week

필수 환경 변수 (.env 파일 또는 쉘에 설정):
    QUESTCHAT_SIGNING_SECRET
    QUESTCHAT_SERVICE_URL (기본값: http://localhost:8003)

종료 코드: HTTP 200 이면 0, 그 외 응답이면 1, 연결 실패면 2.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Sequence

import httpx
from dotenv import load_dotenv

from common.logger import setup_logger

from .config import SIGNATURE_HEADER, TriggerConfig, load_trigger_config


logger = logging.getLogger(__name__)


JOBS = ("prompt", "rollover", "week")

EXIT_OK = 0
EXIT_HTTP_ERROR = 1
EXIT_TRANSPORT_ERROR = 2


def run_trigger(
    job: str,
    config: TriggerConfig,
    transport: httpx.BaseTransport | None = None,
) -> int:
    url = f"{config.service_url}/api/cron/{job}"

    try:
        with httpx.Client(timeout=config.timeout_seconds, transport=transport) as client:
            resp = client.post(url, headers={SIGNATURE_HEADER: config.signing_secret})
    except httpx.HTTPError as exc:
        logger.error("failed to reach %s: %s", url, exc)
        return EXIT_TRANSPORT_ERROR

    if resp.status_code != 200:
        logger.error(
            "%s trigger failed: status code %d, body: %s",
            job,
            resp.status_code,
            resp.text[:500],
        )
        return EXIT_HTTP_ERROR

    try:
        body = resp.json()
    except ValueError:
        body = resp.text
    print(json.dumps(body, ensure_ascii=False, indent=2))
    logger.info("%s trigger completed", job, extra={"job": job})
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    setup_logger(name="questchat-trigger")

    parser = argparse.ArgumentParser(
        prog="questchat-trigger",
        description="Trigger a QuestChat scheduled job on the streak service.",
    )
    parser.add_argument("job", choices=JOBS)
    args = parser.parse_args(argv)

    return run_trigger(args.job, load_trigger_config())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
