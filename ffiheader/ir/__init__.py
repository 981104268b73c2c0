"""Intermediate Representation (IR) of an exported library surface.

The IR sits between the declaration nodes handed over by a syntax adapter and
the ordered emission stream consumed by a writer. It models:
- Type references (primitives, paths, pointers, arrays, function pointers)
- Entities (structs, unions, enums, opaque types, aliases, functions,
  constants, statics)
- Conditional-compilation predicates and recognized attributes
- The Library that owns every entity of one invocation
"""
