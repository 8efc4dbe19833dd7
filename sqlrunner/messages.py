"""User-facing message templates.

Templates use :meth:`str.format` positional placeholders.  Keeping them in
one table lets commands share wording and lets tests assert on the exact
text without duplicating literals.
"""

from __future__ import annotations

MESSAGES: dict[str, str] = {
    "statement_ok": "{0} executed successfully",
    "statement_generic_ok": "Statement executed successfully",
    "dml_success": "{0} {1} executed successfully",
    "dml_failure": "{0} {1} failed",
    "rows_processed": "{0} row(s) affected.",
    "rows_retrieved": "{0} row(s) retrieved.",
    "create_success": "{0} {1} created",
    "create_type_success": "{0} created",
    "create_generic_success": "Object created",
    "drop_success": "{0} {1} dropped",
    "drop_type_success": "{0} dropped",
    "drop_generic_success": "Object dropped",
    "alter_success": "{0} {1} altered",
    "object_analyzed": "{0} {1} analyzed",
    "drop_warning": "Could not drop object",
    "drop_warning_named": "Could not drop {0}",
    "read_only_mode": "Connection \"{0}\" is read only. Statement {1} ignored!",
    "statement_cancelled": "Statement cancelled",
    "prompting_cancelled": "Variable prompting cancelled",
    "mode_not_supported": "{0} is not supported in {1} mode. The statement has been ignored.",
    "connection_required": "Cannot execute command '{0}' without a connection!",
    "execute_error": "An error occurred when executing the SQL command:",
    "error_during_retrieve": "Retrieval was cancelled. Not all rows have been retrieved.",
    "max_results_reached": "Stopped processing results after {0} iterations",
    "result_removed": "Empty result removed: {0}",
    "server_output": "Server output:",
    "warnings": "Warnings:",
    "command_ignored": "{0} ignored",
    "commit_ok": "COMMIT executed successfully",
    "rollback_ok": "ROLLBACK executed successfully",
    "transaction_started": "{0} executed successfully. Manual transaction started.",
    "set_success": "{0} set to {1}",
    "set_failure": "Invalid value \"{0}\" for {1}",
    "autocommit_on": "Autocommit switched on",
    "autocommit_off": "Autocommit switched off",
    "database_changed": "Database changed to {0}",
    "var_defined": "Variable {0} defined with value '{1}'",
    "var_removed": "Variable {0} removed",
    "var_not_removed": "Variable {0} not found",
    "var_list_empty": "No variables defined",
    "batch_started": "Batch mode started. Statements will be collected until {0}",
    "batch_added": "Statement added to batch",
    "batch_executed": "{0} statement(s) executed in batch",
    "batch_not_started": "No batch started",
    "feedback_on": "Feedback switched on",
    "feedback_off": "Feedback switched off",
    "hide_warnings_on": "Warnings will be hidden",
    "hide_warnings_off": "Warnings will be displayed",
    "server_output_on": "Server output enabled",
    "server_output_off": "Server output disabled",
    "history_empty": "History is empty",
    "delimiter_changed": "Delimiter changed to {0}",
    "delimiter_missing": "No delimiter specified",
    "confirm_declined": "Script execution stopped by user",
    "procedure_missing": "No procedure name specified",
    "plan_only": "Execution plan only. Statement was not executed.",
    "execution_plan": "Execution plan:",
}


def get_message(key: str, *args: object) -> str:
    """Return the message for *key* formatted with *args*.

    Unknown keys return the key itself so that a missing template never
    turns into an error while a result is being assembled.
    """
    template = MESSAGES.get(key)
    if template is None:
        return key
    if not args:
        return template
    return template.format(*args)
