"""
Rock C Runtime
==============

This module produces the runtime block embedded at the top of every
generated C file. The runtime is a handful of small shims; everything a
disabled feature would need is left out, so a program compiled without
printing contains no reference to printf at all.

Runtime Symbols
---------------
Always present:
    bl_rt_interrupt(n)          calls bl_rt_interrupt_hook if one is set
    bl_rt_str_eq(a, b)          byte-wise string equality
    bl_rt_panic_str(s)          panic with a string payload (status 101)
    bl_rt_panic_int(v)          panic with an integer payload (status v & 0xFF)
    bl_rt_divisor(d)            returns d, panics with "division by zero" when d is 0

Heap allocator:
    bl_rt_alloc(size)           allocate and record in the allocation table
    bl_rt_free(ptr)             free a recorded block
    bl_rt_heap_release_all()    free every recorded block

Printing:
    bl_rt_print_str / bl_rt_print_int / bl_rt_print_uint / bl_rt_print_bool

Logging:
    bl_rt_log_str / bl_rt_log_int / bl_rt_log_uint / bl_rt_log_bool

Panic Pipeline
--------------
A panic runs its steps in order, skipping the ones whose facility is
disabled: release the heap, log the payload, print the payload, exit with
the payload status. The exit is followed by an endless loop so the panic
routines (declared _Noreturn) never return even where exit() is a stub.
"""

from boulder.rockc.config import FeatureToggles


# Status used by a panic with a non-integer payload
PANIC_STATUS_STR = 101

# Panic payload of a division or remainder by zero
DIVISION_BY_ZERO = "division by zero"

HEAP_SLOTS = 64


# =============================================================================
# Runtime Sections
# =============================================================================

def _interrupt_section() -> list[str]:
    return [
        "void (*bl_rt_interrupt_hook)(uint32_t) = 0;",
        "",
        "void bl_rt_interrupt(uint32_t number) {",
        "    if (bl_rt_interrupt_hook) {",
        "        bl_rt_interrupt_hook(number);",
        "    }",
        "}",
        "",
    ]


def _string_section() -> list[str]:
    return [
        "bool bl_rt_str_eq(const char *a, const char *b) {",
        "    while (*a && *a == *b) {",
        "        a++;",
        "        b++;",
        "    }",
        "    return *a == *b;",
        "}",
        "",
    ]


def _heap_section() -> list[str]:
    return [
        f"#define BL_RT_HEAP_SLOTS {HEAP_SLOTS}",
        "static uint8_t *bl_rt_heap_table[BL_RT_HEAP_SLOTS];",
        "",
        "uint8_t *bl_rt_alloc(uint32_t size) {",
        "    for (int i = 0; i < BL_RT_HEAP_SLOTS; i++) {",
        "        if (bl_rt_heap_table[i] == 0) {",
        "            uint8_t *block = (uint8_t *)malloc(size ? size : 1);",
        "            bl_rt_heap_table[i] = block;",
        "            return block;",
        "        }",
        "    }",
        "    return 0;",
        "}",
        "",
        "void bl_rt_free(uint8_t *block) {",
        "    for (int i = 0; i < BL_RT_HEAP_SLOTS; i++) {",
        "        if (block && bl_rt_heap_table[i] == block) {",
        "            free(block);",
        "            bl_rt_heap_table[i] = 0;",
        "            return;",
        "        }",
        "    }",
        "}",
        "",
        "void bl_rt_heap_release_all(void) {",
        "    for (int i = 0; i < BL_RT_HEAP_SLOTS; i++) {",
        "        if (bl_rt_heap_table[i]) {",
        "            free(bl_rt_heap_table[i]);",
        "            bl_rt_heap_table[i] = 0;",
        "        }",
        "    }",
        "}",
        "",
    ]


def _output_section(prefix: str, stream: str) -> list[str]:
    """Shims for one output facility ('print' to stdout or 'log' to stderr)."""
    if stream == "stdout":
        call = "printf("
    else:
        call = f"fprintf({stream}, "
    return [
        f"void bl_rt_{prefix}_str(const char *value) {{",
        f'    {call}"%s\\n", value);',
        "}",
        "",
        f"void bl_rt_{prefix}_int(int64_t value) {{",
        f'    {call}"%lld\\n", (long long)value);',
        "}",
        "",
        f"void bl_rt_{prefix}_uint(uint64_t value) {{",
        f'    {call}"%llu\\n", (unsigned long long)value);',
        "}",
        "",
        f"void bl_rt_{prefix}_bool(bool value) {{",
        f'    {call}"%s\\n", value ? "true" : "false");',
        "}",
        "",
    ]


def _panic_routine(features: FeatureToggles, name: str, param: str, fmt: str, arg: str, status: str) -> list[str]:
    lines = [f"_Noreturn void {name}({param}) {{"]
    if features.heap_allocator:
        lines.append("    bl_rt_heap_release_all();")
    if features.logging:
        lines.append(f'    fprintf(stderr, "panic: {fmt}\\n", {arg});')
    if features.printing:
        lines.append(f'    printf("panic: {fmt}\\n", {arg});')
    lines.extend([
        f"    exit({status});",
        "    for (;;) {",
        "    }",
        "}",
        "",
    ])
    return lines


def _panic_section(features: FeatureToggles) -> list[str]:
    lines = _panic_routine(
        features, "bl_rt_panic_str", "const char *payload", "%s", "payload",
        str(PANIC_STATUS_STR),
    )
    lines.extend(_panic_routine(
        features, "bl_rt_panic_int", "int64_t payload", "%lld", "(long long)payload",
        "(int)(payload & 0xFF)",
    ))
    return lines


def _divisor_section() -> list[str]:
    return [
        "uint64_t bl_rt_divisor(uint64_t divisor) {",
        "    if (divisor == 0) {",
        f"        bl_rt_panic_str(\"{DIVISION_BY_ZERO}\");",
        "    }",
        "    return divisor;",
        "}",
        "",
    ]


# =============================================================================
# Public Interface
# =============================================================================

def runtime_includes(features: FeatureToggles) -> list[str]:
    """#include lines needed by the runtime for the given features."""
    includes = ["#include <stdint.h>", "#include <stdbool.h>", "#include <stdlib.h>"]
    if features.uses_stdio:
        includes.append("#include <stdio.h>")
    return includes


def generate_runtime(features: FeatureToggles) -> list[str]:
    """
    Generate the C runtime block for a set of feature toggles.

    Args:
        features: Enabled runtime facilities

    Returns:
        Lines of C source (without trailing newlines)
    """
    lines = ["/* Boulder runtime */", ""]
    lines.extend(_interrupt_section())
    lines.extend(_string_section())
    if features.heap_allocator:
        lines.extend(_heap_section())
    if features.printing:
        lines.extend(_output_section("print", "stdout"))
    if features.logging:
        lines.extend(_output_section("log", "stderr"))
    lines.extend(_panic_section(features))
    lines.extend(_divisor_section())
    return lines
