import os
from dataclasses import dataclass, fields
from pathlib import Path

from dotenv import load_dotenv

from dialogcast.utils.retry import RetryPolicy

# 全局变量：存储 .env 文件所在目录（用于解析相对路径）
_env_file_dir: Path | None = None


def load_env_file(env_path: str | Path | None = None) -> None:
    """
    加载项目级 .env 文件（不覆盖已存在的环境变量）。

    如果 env_path 为 None，从当前工作目录和本文件位置向上查找 .env。

    Args:
        env_path: .env 文件路径（None = 自动查找）
    """
    global _env_file_dir

    if env_path is not None:
        env_path = Path(env_path)
        if env_path.exists():
            load_dotenv(env_path, override=False)
            _env_file_dir = env_path.parent
        return

    candidates = [Path.cwd(), *Path.cwd().parents, *Path(__file__).resolve().parents]
    for parent in candidates:
        env_file = parent / ".env"
        if env_file.exists():
            load_dotenv(env_file, override=False)  # override=False: 不覆盖已存在的环境变量
            _env_file_dir = env_file.parent
            return


def resolve_relative_path(path: str | Path) -> Path:
    """相对路径相对于 .env 所在目录解析；找不到 .env 时相对于当前工作目录。"""
    path = Path(path)
    if path.is_absolute():
        return path
    if _env_file_dir:
        return (_env_file_dir / path).resolve()
    return path.resolve()


def get_elevenlabs_key() -> str | None:
    """
    从系统环境变量读取 ElevenLabs API Key。
    环境变量：ELEVENLABS_API_KEY
    """
    return os.getenv("ELEVENLABS_API_KEY")


def get_openai_key() -> str | None:
    """
    仅从系统环境变量读取。
    优先使用 OPENAI_KEY，回退到官方 OPENAI_API_KEY。
    """
    return os.getenv("OPENAI_KEY") or os.getenv("OPENAI_API_KEY")


@dataclass
class PipelineConfig:
    # 时间线输出格式（所有 segment 必须一致）
    sample_rate: int = 44100
    channels: int = 2
    sample_width: int = 2  # 字节/采样（16-bit PCM）

    # 静音填充
    fade_duration: float = 0.05  # 静音淡入/淡出时长（秒）
    silence_level: float = 0.1  # 静音平台幅度（满幅的比例）

    # 停顿与标记
    max_pre_pause: float = 1.5  # 前置停顿上限（秒）
    max_post_pause: float = 1.0  # 后置停顿上限（秒）
    max_breaks: int = 5  # 每个 turn 最多插入的 break 数量
    timing_seed: int | None = None  # 停顿抖动的随机种子（None = 不可复现）

    # 对话分析（OpenAI）
    analysis_enabled: bool = True
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2  # 较低保证分析结果稳定
    analysis_cache_ttl: float = 3600.0  # 分析缓存有效期（秒）
    analysis_max_workers: int = 2

    # 语音合成（ElevenLabs）
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_model: str = "eleven_turbo_v2"
    elevenlabs_timeout: float = 60.0  # 单次请求超时（秒）
    synthesis_max_workers: int = 2  # 合成并发数（受供应商限流约束，默认 2）
    synthesis_failure_policy: str = "abort"  # 单个 turn 合成失败时：abort（中止整次生成）或 skip（跳过该 turn）

    # 重试（synthesis / analysis / 下载共用）
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_jitter: float = 0.1

    # 下载远程 segment
    download_timeout: float = 30.0

    def __post_init__(self):
        if self.sample_width != 2:
            raise ValueError("only 16-bit PCM output is supported (sample_width=2)")
        if self.channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2, got {self.channels}")
        if self.synthesis_max_workers < 1 or self.analysis_max_workers < 1:
            raise ValueError("worker counts must be >= 1")
        if self.synthesis_failure_policy not in ("abort", "skip"):
            raise ValueError(f"synthesis_failure_policy must be abort or skip, got {self.synthesis_failure_policy}")

    @property
    def bytes_per_frame(self) -> int:
        return self.channels * self.sample_width

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            jitter=self.retry_jitter,
        )

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """
        从 DIALOGCAST_* 环境变量构建配置，overrides 优先。

        例如 DIALOGCAST_SYNTHESIS_MAX_WORKERS=4、DIALOGCAST_TIMING_SEED=7。
        """
        values = {}
        for f in fields(cls):
            raw = os.getenv(f"DIALOGCAST_{f.name.upper()}")
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(raw, f.default)
        values.update(overrides)
        return cls(**values)


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if default is None:
        # 目前只有 timing_seed 默认为 None
        return int(raw)
    return raw
