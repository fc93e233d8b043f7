"""Class and property IRIs of the Elixir code ontology used by the lowering engine."""

CORE = "https://w3id.org/elixir-code/core#"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
XSD = "http://www.w3.org/2001/XMLSchema#"

RDF_TYPE = RDF + "type"

XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_DOUBLE = XSD + "double"
XSD_BOOLEAN = XSD + "boolean"
XSD_BASE64 = XSD + "base64Binary"


def core(local_name: str) -> str:
    return CORE + local_name


# =============================================================================
# Classes
# =============================================================================

EXPRESSION = core("Expression")

# Literals
INTEGER_LITERAL = core("IntegerLiteral")
FLOAT_LITERAL = core("FloatLiteral")
STRING_LITERAL = core("StringLiteral")
ATOM_LITERAL = core("AtomLiteral")
BOOLEAN_LITERAL = core("BooleanLiteral")
NIL_LITERAL = core("NilLiteral")
CHARLIST_LITERAL = core("CharlistLiteral")
BINARY_LITERAL = core("BinaryLiteral")
LIST_LITERAL = core("ListLiteral")
KEYWORD_LIST_LITERAL = core("KeywordListLiteral")
TUPLE_LITERAL = core("TupleLiteral")
MAP_LITERAL = core("MapLiteral")
STRUCT_LITERAL = core("StructLiteral")
SIGIL_LITERAL = core("SigilLiteral")
RANGE_LITERAL = core("RangeLiteral")

# Operators
COMPARISON_OPERATOR = core("ComparisonOperator")
LOGICAL_OPERATOR = core("LogicalOperator")
ARITHMETIC_OPERATOR = core("ArithmeticOperator")
PIPE_OPERATOR = core("PipeOperator")
STRING_CONCAT_OPERATOR = core("StringConcatOperator")
LIST_OPERATOR = core("ListOperator")
MATCH_OPERATOR = core("MatchOperator")
IN_OPERATOR = core("InOperator")
CAPTURE_OPERATOR = core("CaptureOperator")

# References and calls
VARIABLE = core("Variable")
MODULE_REFERENCE = core("ModuleReference")
MODULE_ATTRIBUTE = core("ModuleAttribute")
LOCAL_CALL = core("LocalCall")
REMOTE_CALL = core("RemoteCall")
ANONYMOUS_CALL = core("AnonymousFunctionCall")
ANONYMOUS_FUNCTION = core("AnonymousFunction")
BLOCK = core("Block")

# Patterns
LITERAL_PATTERN = core("LiteralPattern")
VARIABLE_PATTERN = core("VariablePattern")
WILDCARD_PATTERN = core("WildcardPattern")
PIN_PATTERN = core("PinPattern")
TUPLE_PATTERN = core("TuplePattern")
LIST_PATTERN = core("ListPattern")
MAP_PATTERN = core("MapPattern")
STRUCT_PATTERN = core("StructPattern")
BINARY_PATTERN = core("BinaryPattern")
AS_PATTERN = core("AsPattern")

# Control flow
IF_EXPRESSION = core("IfExpression")
UNLESS_EXPRESSION = core("UnlessExpression")
COND_EXPRESSION = core("CondExpression")
CASE_EXPRESSION = core("CaseExpression")
WITH_EXPRESSION = core("WithExpression")
RECEIVE_EXPRESSION = core("ReceiveExpression")
FOR_COMPREHENSION = core("ForComprehension")
TRY_EXPRESSION = core("TryExpression")
RAISE_EXPRESSION = core("RaiseExpression")
MATCH_CLAUSE = core("MatchClause")
COND_CLAUSE = core("CondClause")
GUARD_CLAUSE = core("GuardClause")
GENERATOR = core("Generator")
BINARY_SEGMENT = core("BinarySegment")
RESCUE_PATTERN = core("RescuePattern")

# =============================================================================
# Datatype properties
# =============================================================================

INTEGER_VALUE = core("integerValue")
FLOAT_VALUE = core("floatValue")
STRING_VALUE = core("stringValue")
ATOM_VALUE = core("atomValue")
CHARLIST_VALUE = core("charlistValue")
BINARY_VALUE = core("binaryValue")
OPERATOR_SYMBOL = core("operatorSymbol")
NAME = core("name")
REFERS_TO_MODULE = core("refersToModule")
MODULE_NAME = core("moduleName")
ATTRIBUTE_NAME = core("attributeName")
FUNCTION_NAME = core("functionName")
ARITY = core("arity")
SIGIL_CHAR = core("sigilChar")
SIGIL_CONTENT = core("sigilContent")
SIGIL_MODIFIERS = core("sigilModifiers")
CAPTURE_INDEX = core("captureIndex")
CAPTURE_MODULE_NAME = core("captureModuleName")
CAPTURE_FUNCTION_NAME = core("captureFunctionName")
CAPTURE_ARITY = core("captureArity")
START_LINE = core("startLine")
HAS_ELSE = core("hasElse")
HAS_AFTER_TIMEOUT = core("hasAfterTimeout")

# =============================================================================
# Object properties (boolean-valued in flag-only output)
# =============================================================================

HAS_LEFT_OPERAND = core("hasLeftOperand")
HAS_RIGHT_OPERAND = core("hasRightOperand")
HAS_OPERAND = core("hasOperand")
HAS_CONDITION = core("hasCondition")
HAS_THEN_BRANCH = core("hasThenBranch")
HAS_ELSE_BRANCH = core("hasElseBranch")
HAS_CLAUSE = core("hasClause")
HAS_ELEMENT = core("hasElement")
HAS_KEY = core("hasKey")
HAS_VALUE = core("hasValue")
HAS_ARGUMENT = core("hasArgument")
HAS_RECEIVER = core("hasReceiver")
HAS_SUBJECT = core("hasSubject")
HAS_PATTERN = core("hasPattern")
HAS_GUARD = core("hasGuard")
HAS_BODY = core("hasBody")
HAS_GENERATOR = core("hasGenerator")
HAS_FILTER = core("hasFilter")
HAS_TAIL = core("hasTail")
HAS_STATEMENT = core("hasStatement")
HAS_RESCUE_CLAUSE = core("hasRescueClause")
HAS_CATCH_CLAUSE = core("hasCatchClause")
HAS_ELSE_CLAUSE = core("hasElseClause")
HAS_AFTER_CLAUSE = core("hasAfterClause")
HAS_EXCEPTION = core("hasException")
HAS_SOURCE = core("hasSource")
RANGE_START = core("rangeStart")
RANGE_END = core("rangeEnd")
RANGE_STEP = core("rangeStep")
