from tripwire.tripwire_datatypes import (
    FormatResult, FormattedValue, Formatter, MsgSource, Removable, ValueKind, classify,
)
from tripwire.tripwire_errors import AssertionFailure, AssertionFatal, TripwireError
from tripwire.tripwire_stack import StackTracker
from tripwire.tripwire_printer import FormatContext, FormatManager, format_value
from tripwire.tripwire_config import DEFAULT_CONFIG, ConfigInst, assert_config, create_config
from tripwire.tripwire_context import ScopeContext, create_context, get_scope_context
from tripwire.tripwire_scope import (
    AssertInst, AssertScope, add_assert_inst_func, add_assert_inst_funcs,
    add_assert_inst_property, clear_user_inst_funcs, create_assert_scope,
)
from tripwire.tripwire_adapters import (
    create_eval_adapter, create_expr_adapter, create_not_adapter, do_await,
)
from tripwire.tripwire_funcs import ChangeResult, deep_equal
from tripwire.tripwire_assert import (
    AssertClass, add_assert_func, add_assert_funcs, assert_, create_assert, expect, use_scope,
)
