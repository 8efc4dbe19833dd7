"""Command handlers keyed by statement verb."""

from sqlrunner.commands.base import RunContext, SqlCommand
from sqlrunner.commands.ddl import DdlCommand, create_ddl_commands
from sqlrunner.commands.misc import IgnoredCommand, UseCommand
from sqlrunner.commands.result_processor import ResultProcessor
from sqlrunner.commands.select import SelectCommand
from sqlrunner.commands.set_command import SetCommand
from sqlrunner.commands.transaction import (
    MANUAL_TRANSACTION,
    TransactionEndCommand,
    TransactionStartCommand,
    create_transaction_end_commands,
)
from sqlrunner.commands.updating import UpdatingCommand, create_dml_commands
from sqlrunner.commands.wb import (
    WbCall,
    WbCommand,
    WbConfirm,
    WbDelimiter,
    WbDisableOutput,
    WbEcho,
    WbEnableOutput,
    WbEndBatch,
    WbFeedback,
    WbHideWarnings,
    WbHistory,
    WbStartBatch,
    WbVarDef,
    WbVarDelete,
    WbVarList,
    create_wb_commands,
)

__all__ = [
    "MANUAL_TRANSACTION",
    "DdlCommand",
    "IgnoredCommand",
    "ResultProcessor",
    "RunContext",
    "SelectCommand",
    "SetCommand",
    "SqlCommand",
    "TransactionEndCommand",
    "TransactionStartCommand",
    "UpdatingCommand",
    "UseCommand",
    "WbCall",
    "WbCommand",
    "WbConfirm",
    "WbDelimiter",
    "WbDisableOutput",
    "WbEcho",
    "WbEnableOutput",
    "WbEndBatch",
    "WbFeedback",
    "WbHideWarnings",
    "WbHistory",
    "WbStartBatch",
    "WbVarDef",
    "WbVarDelete",
    "WbVarList",
    "create_ddl_commands",
    "create_dml_commands",
    "create_transaction_end_commands",
    "create_wb_commands",
]
