"""
주기 작업 스케줄러 모듈

캐시 만료 정리, 메모리 만료 정리, 임베딩 백필 같은 유지보수 작업을
애플리케이션 수명 동안 일정 간격으로 실행합니다.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from loguru import logger


JobFunc = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class PeriodicTask:
    """주기 작업 하나의 정의와 실행 기록"""

    name: str
    interval_seconds: float
    func: JobFunc
    run_count: int = 0
    failure_count: int = 0
    last_run_at: float | None = None
    last_error: str | None = None
    _task: asyncio.Task | None = field(default=None, repr=False)

    async def run_once(self) -> None:
        """
        작업을 한 번 실행합니다.

        동기 함수와 코루틴 함수를 모두 지원합니다. 실패는 기록 후
        다시 발생시킵니다.
        """
        self.last_run_at = time.time()
        try:
            result = self.func()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self.failure_count += 1
            self.last_error = str(e)
            raise
        self.run_count += 1
        self.last_error = None
        if result:
            logger.debug(f"주기 작업 '{self.name}' 결과: {result}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
            "running": self._task is not None and not self._task.done(),
        }


class TaskScheduler:
    """
    주기 작업 스케줄러

    작업마다 독립된 asyncio 태스크를 띄웁니다. 한 번의 실행이 실패해도
    경고만 남기고 다음 주기에 다시 실행합니다.
    """

    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}
        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    def register(
        self, name: str, interval_seconds: float, func: JobFunc
    ) -> PeriodicTask:
        """
        주기 작업을 등록합니다.

        Args:
            name: 작업 이름 (고유)
            interval_seconds: 실행 간격 (초)
            func: 인자 없는 동기/비동기 함수

        Returns:
            PeriodicTask: 등록된 작업
        """
        if name in self._tasks:
            raise ValueError(f"Task '{name}' is already registered")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        task = PeriodicTask(name=name, interval_seconds=interval_seconds, func=func)
        self._tasks[name] = task
        if self._running:
            self._spawn(task)
        return task

    def get(self, name: str) -> PeriodicTask | None:
        return self._tasks.get(name)

    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        """등록된 모든 작업을 시작합니다."""
        if self._running:
            logger.warning("TaskScheduler가 이미 실행 중입니다")
            return

        self._running = True
        self._shutdown_event.clear()
        for task in self._tasks.values():
            self._spawn(task)
        logger.info(f"TaskScheduler 시작됨 (작업 {len(self._tasks)}개)")

    async def shutdown(self, timeout: float = 5.0) -> None:
        """
        모든 작업을 중지합니다.

        Args:
            timeout: 태스크 종료 대기 시간 (초)
        """
        if not self._running:
            return

        self._running = False
        self._shutdown_event.set()

        pending = [t._task for t in self._tasks.values() if t._task is not None]
        if pending:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*pending, return_exceptions=True),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("일부 주기 작업이 시간 내에 종료되지 않았습니다")
                for t in pending:
                    if not t.done():
                        t.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        for task in self._tasks.values():
            task._task = None
        logger.info("TaskScheduler 중지 완료")

    def _spawn(self, task: PeriodicTask) -> None:
        task._task = asyncio.create_task(
            self._loop(task), name=f"periodic:{task.name}"
        )

    async def _loop(self, task: PeriodicTask) -> None:
        while self._running:
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=task.interval_seconds
                )
                # shutdown 신호
                return
            except asyncio.TimeoutError:
                pass

            try:
                await task.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"주기 작업 '{task.name}' 실패: {e}")
