"""Configuration dataclasses plus TOML load/save for agent-vm."""

from __future__ import annotations

import getpass
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

import ubelt as ub

from .util import expand

DEFAULT_TEMPLATE_NAME = 'agent-vm-base'
DEFAULT_VM_PREFIX = 'agent-vm-'
SECTIONS = ('template', 'paths', 'engine', 'provision', 'policy', 'agents')


@dataclass
class TemplateConfig:
    name: str = DEFAULT_TEMPLATE_NAME
    image: str = 'template:debian-13'
    disk_gb: int = 20
    memory_gb: int = 8
    # 0 leaves the CPU count to the engine default.
    cpus: int = 0


@dataclass
class PathsConfig:
    state_dir: str = '~/.agent-vm'
    config_dir: str = '~/.claude'
    # Empty means /home/<user>.linux/.claude, the Lima guest home.
    config_mount_point: str = ''
    user_setup_script: str = '~/.agent-vm.setup.sh'
    user_runtime_script: str = '~/.agent-vm.runtime.sh'
    project_runtime_name: str = '.agent-vm.runtime.sh'


@dataclass
class EngineConfig:
    limactl: str = 'limactl'
    vm_prefix: str = DEFAULT_VM_PREFIX
    lock_timeout_s: int = 300


@dataclass
class ProvisionConfig:
    guest_shell: str = 'zsh'
    share_config_dir: bool = True


@dataclass
class PolicyConfig:
    allow_cidrs: list[str] = field(
        default_factory=lambda: [
            '10.0.0.0/8',
            '172.16.0.0/12',
            '192.168.0.0/16',
            '127.0.0.0/8',
            '169.254.0.0/16',
        ]
    )
    allow_cidrs6: list[str] = field(
        default_factory=lambda: ['::1/128', 'fc00::/7', 'fe80::/10']
    )


@dataclass
class AgentsConfig:
    """Fixed auto-approve flags passed to each agent before user args."""

    claude: list[str] = field(
        default_factory=lambda: ['--dangerously-skip-permissions']
    )
    opencode: list[str] = field(
        default_factory=lambda: ['--dangerously-skip-permissions']
    )
    codex: list[str] = field(default_factory=lambda: ['--full-auto'])


@dataclass
class AgentVMConfig:
    template: TemplateConfig = field(default_factory=TemplateConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    provision: ProvisionConfig = field(default_factory=ProvisionConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'AgentVMConfig':
        self.paths.state_dir = expand(self.paths.state_dir)
        self.paths.config_dir = expand(self.paths.config_dir)
        self.paths.user_setup_script = expand(self.paths.user_setup_script)
        self.paths.user_runtime_script = expand(self.paths.user_runtime_script)
        return self

    @property
    def config_mount_point(self) -> str:
        if self.paths.config_mount_point:
            return self.paths.config_mount_point
        return f'/home/{getpass.getuser()}.linux/.claude'

    def agent_flags(self, agent: str) -> list[str]:
        flags = getattr(self.agents, agent, None)
        if flags is None:
            raise KeyError(f'Unknown agent: {agent}')
        return list(flags)


def config_path() -> Path:
    p = ub.Path.appdir('agent-vm', type='config').ensuredir()
    return Path(p) / 'config.toml'


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: AgentVMConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    if d.get('verbosity', 1) != 1:
        lines.append(f'verbosity = {d["verbosity"]}')
        lines.append('')
    for section in SECTIONS:
        body = d[section]
        lines.append(f'[{section}]')
        for k, v in body.items():
            if isinstance(v, bool):
                lines.append(f'{k} = {"true" if v else "false"}')
            elif isinstance(v, int):
                lines.append(f'{k} = {v}')
            elif isinstance(v, list):
                parts = [f'"{_toml_escape(str(item))}"' for item in v]
                lines.append(f'{k} = [{", ".join(parts)}]')
            else:
                lines.append(f'{k} = "{_toml_escape(str(v))}"')
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> AgentVMConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    cfg = AgentVMConfig()
    for section in SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def load_or_default(path: Path | None = None) -> AgentVMConfig:
    """Load the config file if it exists; otherwise use defaults."""
    fpath = path if path is not None else config_path()
    if not fpath.exists():
        return AgentVMConfig().expanded_paths()
    return load(fpath).expanded_paths()


def save(path: Path, cfg: AgentVMConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')
