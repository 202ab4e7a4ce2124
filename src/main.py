from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level="TRACE",
    log_file=LOG_FILE,
    console_level="INFO",
)

import asyncio
import signal
import sys
import time

from admin.http_server import main_loop as admin_http_main
from admin.schemas import RuntimeControl
from channels.telegram_polling import TelegramGateway
from core.acknowledgement import AcknowledgementStateMachine
from core.delivery import DeliveryScheduler
from core.orchestrator import Orchestrator, configure_orchestrator
from core.recovery import recover_all
from errors import StoreError
from llm.base import LLMClient
import metrics  # noqa: F401  注册指标相关的事件处理器
import storage.db_config as db_config

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


def _create_llm_client() -> LLMClient:
    """根据配置创建 LLM 客户端实例"""
    if LLM_PROVIDER == "openai":
        from llm.openai_client import OpenAIClient

        return OpenAIClient(model=LLM_MODEL)

    if LLM_PROVIDER == "gemini":
        from llm.gemini_client import GeminiClient

        return GeminiClient(model=LLM_MODEL)

    raise ValueError(f"不支持的 LLM_PROVIDER: {LLM_PROVIDER}")


async def main() -> int:
    validate_settings()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)

    gateway = TelegramGateway()
    ack = AcknowledgementStateMachine(gateway)
    scheduler = DeliveryScheduler(gateway, ack)
    configure_orchestrator(Orchestrator(
        llm_client=_create_llm_client(),
        gateway=gateway,
        scheduler=scheduler,
        ack=ack,
    ))

    try:
        # Bot 先初始化好才能投递已过期的提醒; 恢复完成之后才开始接收消息
        await gateway.initialize()
        try:
            await recover_all(scheduler)
        except StoreError as e:
            logger.critical(f"启动时读取未发送提醒失败, 无法安全运行: {e}")
            return 1

        tasks = [gateway.run(shutdown_event)]
        if ENABLE_ADMIN_HTTP:
            tasks.append(admin_http_main(RuntimeControl(
                shutdown_event=shutdown_event,
                started_at=time.time(),
                scheduler=scheduler,
                ack=ack,
            )))
        else:
            logger.info("Admin HTTP 已禁用")

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 Kairos...")
        await scheduler.shutdown()
        await ack.shutdown()
        await gateway.shutdown()
        configure_orchestrator(None)

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("Kairos 已关闭")
    return 0


if __name__ == "__main__":
    logger.info("启动 Kairos...")
    sys.exit(asyncio.run(main()))
