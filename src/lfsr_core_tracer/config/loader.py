import os
import re
import yaml
from typing import Any, Dict, Mapping, Optional
from .models import SystemConfig, MachineConfig, IoConfig

CONFIG_ENV = "LFSR_CONFIG"
DEBUG_ENV = "DEBUG"

class ConfigLoader:
    def load_from_file(self, path: str) -> SystemConfig:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return self._parse_config(data or {})

    def load_from_string(self, text: str) -> SystemConfig:
        return self._parse_config(yaml.safe_load(text) or {})

    # @intent:responsibility 環境変数からConfigを構築します。
    # @intent:rationale LFSR_CONFIGがあればそのYAMLを読み、DEBUGはファイルの設定より優先します。
    def load_from_environment(self, environ: Optional[Mapping[str, str]] = None) -> SystemConfig:
        environ = os.environ if environ is None else environ
        path = environ.get(CONFIG_ENV)
        config = self.load_from_file(path) if path else SystemConfig()
        return self.apply_environment(config, environ)

    def apply_environment(self, config: SystemConfig, environ: Mapping[str, str]) -> SystemConfig:
        if DEBUG_ENV in environ:
            config.debug = self._parse_option(environ[DEBUG_ENV]) != 0
        return config

    def _parse_config(self, data: Dict[str, Any]) -> SystemConfig:
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a mapping.")
        defaults = MachineConfig()
        machine_data = self._parse_section(data, "machine")
        machine = MachineConfig(
            word_width=self._parse_int(machine_data.get("word_width", defaults.word_width)),
            memory_size=self._parse_int(machine_data.get("memory_size", defaults.memory_size)),
            pc_width=self._parse_int(machine_data.get("pc_width", defaults.pc_width)),
            pc_mode=str(machine_data.get("pc_mode", defaults.pc_mode)).lower(),
            polynomial=self._parse_int(machine_data.get("polynomial", defaults.polynomial)),
            add_mode=self._parse_bool(machine_data.get("add_mode", defaults.add_mode)),
            halt_on_self_jump=self._parse_bool(machine_data.get("halt_on_self_jump", defaults.halt_on_self_jump)),
        )

        io_data = self._parse_section(data, "io")
        io = IoConfig(non_blocking=self._parse_bool(io_data.get("non_blocking", False)))

        return SystemConfig(
            machine=machine,
            io=io,
            debug=self._parse_bool(data.get("debug", False)),
        )

    def _parse_section(self, data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Section '{name}' must be a mapping.")
        return section

    # YAMLのtrue/falseのみを受け付け、文字列"false"などを真と誤認しない
    def _parse_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        raise ValueError(f"Invalid boolean format: {value!r}")

    def _parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer format: {value}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            if value.lower().startswith("0x"):
                return int(value, 16)
            return int(value)
        raise ValueError(f"Invalid integer format: {value}")

    # 先頭の整数部分だけを読み、読めなければ0とする
    def _parse_option(self, value: str) -> int:
        match = re.match(r"\s*([+-]?\d+)", value)
        return int(match.group(1)) if match else 0
