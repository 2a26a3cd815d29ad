# millisearch

The core pieces of a small full-text search engine, in pure Python with no
runtime dependencies.

- **Query trees** (`millisearch.query_tree`, `millisearch.query_builder`):
  a tokenized query becomes a tree of `And`, `Or`, `Consecutive` and
  `QueryOp` nodes. The tree covers synonyms, word splits, n-gram
  concatenation, quoted phrases, optional words and typo tolerance.
  `maximum_typo` and `maximum_proximity` measure a tree, and
  `Operation.pretty()` renders it one node per line.
- **Typo-tolerant matching** (`millisearch.levenshtein`): `Dfa` and
  `build_dfa` compute edit distances up to a limit (0, 1 or 2 typos, with
  optional prefix matching). `word_derivations` finds the words of a
  vocabulary within reach of a word and memoises the result in a dict you
  pass in. `MatchingWords` reports which document words match a query tree.
- **Facets** (`millisearch.facet_store`): `FacetStore` holds number and
  string facet values in memory. `Facets` recomputes the faceted document
  ids and the grouped levels of number values, and `FacetIter` walks number
  values in ascending or descending order along with their documents.
- **Filters** (`millisearch.facet_condition`, `millisearch.filter_parser`):
  `parse_filter` reads expressions such as
  `channel = gotaga OR (timestamp 22 TO 44 AND channel != ponce)` into a
  `FacetCondition`; `condition_from_array` builds one from `key:value`
  rules. `FacetCondition.evaluate` runs a condition against a store and
  returns the set of matching document ids.
- **Utilities**: `available_documents_ids` yields the unused 32-bit
  document ids in ascending order; `TreeLevel` is a level number between
  0 and 31.

## Installation

```
pip install millisearch
```

## Building a query tree

`QueryTreeBuilder` needs a `Context`: an object that supplies the document
ids of a word and the synonyms of a sequence of words.

```python
from millisearch.query_builder import Context, QueryTreeBuilder, tokenize

class MyContext(Context):
    def __init__(self, postings, synonyms):
        self._postings = postings
        self._synonyms = synonyms

    def word_docids(self, word):
        return self._postings.get(word)

    def synonyms(self, words):
        return self._synonyms.get(tuple(words))

ctx = MyContext({"word": {1, 2}, "split": {2, 3}}, {("hello",): [["hi"]]})
builder = QueryTreeBuilder(ctx, stop_words=None, optional_words=True,
                           authorize_typos=True, words_limit=10)
tree = builder.build(tokenize("hello wordsplit"))
print(tree.pretty())
```

`build` also accepts a raw string, which it tokenizes with `tokenize`, and
returns `None` when the query holds no words.

## Matching words

```python
from millisearch.query_tree import MatchingWords

matching = MatchingWords.from_query_tree(tree)
matching.matches("helo")
```

## Filtering on facets

```python
from millisearch.facet_store import FacetStore, FacetType, Facets
from millisearch.filter_parser import parse_filter

store = FacetStore()
store.add_string(0, "gotaga", {1, 2})
store.add_number(1, 30.0, {2, 3})
Facets(store, {0: FacetType.STRING, 1: FacetType.NUMBER}).execute()

condition = parse_filter(
    "channel = gotaga AND timestamp 22 TO 44",
    {"channel": 0, "timestamp": 1},
    {0: FacetType.STRING, 1: FacetType.NUMBER},
)
print(condition.evaluate(store))  # {2}
```

String values are compared lowercased. Malformed expressions, unknown or
non-faceted attributes and range operators on string fields raise
`FilterSyntaxError`, a subclass of `FacetConditionError`.

## Allocating document ids

```python
from itertools import islice
from millisearch.available_documents_ids import available_documents_ids

list(islice(available_documents_ids({0, 2}), 3))  # [1, 3, 4]
```

## What it does not do

This package is a library of building blocks, not a search engine you can
run. It has no command-line tool and no server. It stores nothing on disk:
`FacetStore` lives in memory, and word postings and synonyms come from the
`Context` you provide. It does not index documents, rank results or
paginate them. Its tokenizer is a simple split into lowercased words and
separator runs, with no language-specific analysis.

## Running the tests

```
pip install "millisearch[test]"
pytest
```