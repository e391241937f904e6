# Copyright 2018 Datawire. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

from typing import Dict, List, Set

from .document import COLLECTIONS, ConfigurationDocument, GatewayEntity, RequestRoutingRule
from .errors import BuildErrors, ErrorKind


def is_managed(name: str, prefix: str) -> bool:
    return name.startswith(prefix + '-')


def canonical_managed(document: ConfigurationDocument, prefix: str) -> ConfigurationDocument:
    """
    The document with every managed entity in the form we'd build it, and
    everything else exactly as it was read.
    """

    return ConfigurationDocument(**{
        collection: tuple(e.canonical() if is_managed(e.name, prefix) else e
                          for e in document.collection(collection))
        for collection in COLLECTIONS.keys()
    })



def preserve_extraneous(built: ConfigurationDocument, existing: ConfigurationDocument,
                        prefix: str, errors: BuildErrors) -> ConfigurationDocument:
    """
    Merge the things on the gateway that we don't own (anything whose name
    doesn't carry our prefix) into a freshly built document.

    Existing managed entities are always replaced by what we just built.
    Unmanaged ones are kept as they are, unless keeping them would break the
    document: a name that clashes with one of ours, a second routing rule
    for one of our listeners, or a reference to something that isn't in the
    merged document. Those are dropped with a warning.
    """

    def drop(entity: GatewayEntity, why: str) -> None:
        errors.post_error(f"dropping unmanaged {entity.collection} {entity.name}: {why}",
                          kind=ErrorKind.EXTRANEOUS_DROPPED)

    kept: Dict[str, List[GatewayEntity]] = { collection: [] for collection in COLLECTIONS.keys() }
    routed_listeners: Set[str] = { rule.listener for rule in built.request_routing_rules }

    for entity in existing.entities():
        if is_managed(entity.name, prefix):
            continue

        if entity.name in built.names(entity.collection):
            drop(entity, "name is in use by a managed resource")
            continue

        if isinstance(entity, RequestRoutingRule):
            if entity.listener in routed_listeners:
                drop(entity, f"listener {entity.listener} already has a routing rule")
                continue

            routed_listeners.add(entity.listener)

        kept[entity.collection].append(entity)

    # Dropping one thing can strand another that pointed at it, so keep
    # going until nothing else falls out.
    while True:
        known = {
            collection: set(built.names(collection)) | { e.name for e in kept[collection] }
            for collection in COLLECTIONS.keys()
        }

        dropped = False

        for collection in COLLECTIONS.keys():
            survivors = []

            for entity in kept[collection]:
                missing = [ f"{target_collection} {target}" for target_collection, target in entity.references()
                            if target not in known[target_collection] ]

                if missing:
                    drop(entity, f"refers to missing {', '.join(missing)}")
                    dropped = True
                else:
                    survivors.append(entity)

            kept[collection] = survivors

        if not dropped:
            break

    merged = {
        collection: built.collection(collection) + tuple(kept[collection])
        for collection in COLLECTIONS.keys()
    }

    return ConfigurationDocument(**merged)
