# =============================================================================
# 模块: common/email.py
# 功能: SMTP 邮件发送，作为通知钩子的 Email 推送渠道
# 架构角色: 推送渠道层（apps/hooks/push.py）中 Email 渠道的底层实现。
#   smtplib 是同步阻塞调用，因此通过 run_in_executor 放入线程池执行，
#   避免阻塞事件循环中的其它抓取与钩子任务。
#
# 设计决策:
#   - 发送结果统一返回 (是否成功, 错误信息) 元组，调用方决定如何记录日志
#   - SSL 直连与 STARTTLS 互斥，localhost 不做 STARTTLS
#   - Markdown 通知以纯文本正文发送，HTML 通知使用 multipart/alternative
# =============================================================================
"""SMTP email delivery for FeedImpact notifications."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


def send_via_smtp(
    subject: str,
    body: str,
    from_addr: str,
    to_addrs: List[str],
    smtp_host: str,
    smtp_port: int,
    smtp_user: str = "",
    smtp_password: str = "",
    html_body: Optional[str] = None,
    timeout: float = 10.0,
    use_tls: bool = True,
    use_ssl: bool = False,
) -> Tuple[bool, str]:
    """Send email via SMTP.

    通过 SMTP 协议发送邮件。

    参数:
        subject: 邮件主题
        body: 纯文本正文
        from_addr: 发件人地址
        to_addrs: 收件人地址列表
        smtp_host: SMTP 服务器主机名
        smtp_port: SMTP 端口
        smtp_user: SMTP 认证用户名
        smtp_password: SMTP 认证密码
        html_body: 可选的 HTML 正文
        timeout: 连接超时（秒）
        use_tls: 是否启用 STARTTLS
        use_ssl: 是否使用 SSL 直连

    返回值:
        Tuple[bool, str]: (是否成功, 错误信息)
    """
    if not smtp_host or not from_addr:
        msg = "SMTP configuration error: host or from_addr missing"
        logger.error(msg)
        return False, msg
    if not to_addrs:
        msg = "No recipients provided for SMTP send"
        logger.error(msg)
        return False, msg

    if html_body:
        message = MIMEMultipart("alternative")
        message.attach(MIMEText(body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
    else:
        message = MIMEText(body, "plain", "utf-8")
    message["Subject"] = subject
    message["From"] = from_addr
    message["To"] = ", ".join(to_addrs)

    server = None
    try:
        server = (
            smtplib.SMTP_SSL(smtp_host, smtp_port, timeout=timeout)
            if use_ssl
            else smtplib.SMTP(smtp_host, smtp_port, timeout=timeout)
        )
        server.ehlo()
        if use_tls and not use_ssl and smtp_host.lower() != "localhost":
            server.starttls()
            server.ehlo()
        if smtp_user:
            server.login(smtp_user, smtp_password)
        server.sendmail(from_addr, to_addrs, message.as_string())
        logger.info(f"Email sent via SMTP to {len(to_addrs)} recipient(s)")
        return True, ""
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP send failed on {smtp_host}:{smtp_port}: {e}")
        return False, str(e)
    finally:
        if server is not None:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                pass


async def send_email_async(**kwargs) -> Tuple[bool, str]:
    """Run :func:`send_via_smtp` in the default thread pool.

    将同步 SMTP 发送放入线程池执行，返回值与 send_via_smtp 相同。
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: send_via_smtp(**kwargs))
