# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
The corner-case catalogue.

Each entry is a function ``(destination, context) -> List[NftJob]`` that only
builds job descriptions; nothing here touches the network. Entries are
registered in :data:`CASES` under the id used by ``corner-cases case <id>``,
in the order ``corner-cases create`` runs them.

Supported Cases:
    no-image               NFT whose JSON has no image
    collection             collection NFT plus unverified and verified members
    unverified-creator     one random creator that never signs
    verified-creator       one creator that signs after creation
    candy-machine-creator  0% authority creator plus a 90/10 split
    missing-name-uri       empty on-chain name and URI
    long-description       several thousand character description
    mismatched-names       JSON name differs from the on-chain name
    animations             GLB, GIF and MP4 animations
    immutable              metadata can never be updated
    limited-edition        master edition (supply 5) and one printed edition
    own-creator            destination listed as its own creator
    happy-case             fully populated NFT in a real collection
"""

import unittest
from typing import Callable, Dict, List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import NetworkContext
from .jobs import NftJob
from .nft import CollectionRef, Creator, NftJobSpec

CaseEntry = Callable[[Pubkey, NetworkContext], List[NftJob]]

HAPPY_CASE_COLLECTION = Pubkey.from_string("4xQvgQiN8aFeFp6bvmBd1zMTUMkPMxkgegwUeRDupHoQ")
HAPPY_CASE_CREATOR = Pubkey.from_string("7Yj6vvhdBV4FDkcpFAbpbGEFB8J1LCpxdgZ1FWeVuPhu")

LOREM_IPSUM = (
    "Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod "
    "tempor incididunt ut labore et dolore magna aliqua. Ut enim ad minim veniam, "
    "quis nostrud exercitation ullamco laboris nisi ut aliquip ex ea commodo "
    "consequat. Duis aute irure dolor in reprehenderit in voluptate velit esse "
    "cillum dolore eu fugiat nulla pariatur. Excepteur sint occaecat cupidatat non "
    "proident, sunt in culpa qui officia deserunt mollit anim id est laborum."
)
LONG_DESCRIPTION = "\n\n".join([LOREM_IPSUM] * 24)

GLB_IMAGE = "https://www.arweave.net/WmHroGZbameA0uITaEzlCoOKIGAjmVpkBfvAy5mrcLI"
GLB_ANIMATION = "https://www.arweave.net/GfyWp6ktfhcfs09oXQ-r1OaBPMi0fm4g4l-1jRhPrt8?ext=glb"
GIF_IMAGE = "https://arweave.net/C1BVcCCZX5NXSK9Z5gv3qaivKVXI7AXGRk0kFoHAzWY?ext=gif"
MP4_ANIMATION = "https://arweave.net/6tTaYxu5epcV0Yh50uKsGZ4IFPEZ2ZmFoRlfyD1xbts?ext=mp4"


class UnknownCase(Exception):
    """No catalogue entry has this id"""

    case_id: str

    def __init__(self, case_id: str):
        super().__init__(f"Unknown case {case_id!r}, expected one of: {', '.join(CASES)}")
        self.case_id = case_id


def simple_spec(name: str, destination: Pubkey, **kwargs) -> NftJobSpec:
    """A spec whose JSON name, on-chain name and display name all agree."""
    metadata_json = {"name": name, **kwargs.pop("metadata_json", {})}
    return NftJobSpec(
        display_name=name,
        metadata_json=metadata_json,
        name=name,
        token_owner=destination,
        **kwargs,
    )


def no_image(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            simple_spec(
                "NFT without image",
                destination,
                metadata_json={"description": "This NFT has no image at all."},
            )
        )
    ]


def collection(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    collection_job = NftJob(
        simple_spec(
            "My first Collection NFT",
            destination,
            metadata_json={
                "description": "This is an NFT that represents an entire collection of NFTs!"
            },
            is_collection=True,
        )
    )
    return [
        collection_job,
        NftJob(
            simple_spec("NFT with unverified collection", destination),
            collection_job=collection_job,
        ),
        NftJob(
            simple_spec("NFT with verified collection", destination),
            collection_job=collection_job,
            verify_collection=True,
        ),
    ]


def unverified_creator(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            simple_spec(
                "NFT with unverified creator (1)",
                destination,
                creators=(Creator(Keypair().pubkey(), 100),),
            )
        )
    ]


def verified_creator(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    creator = Keypair()
    return [
        NftJob(
            simple_spec(
                "NFT with verified creator (1)",
                destination,
                creators=(Creator(creator.pubkey(), 100),),
            ),
            creator_signer=creator,
        )
    ]


def candy_machine_creator(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    # A real Candy Machine creator is a PDA; a 0% keypair creator that signs
    # afterwards produces the same on-chain shape.
    authority = Keypair()
    return [
        NftJob(
            simple_spec(
                "NFT with Candy Machine creator",
                destination,
                creators=(
                    Creator(authority.pubkey(), 0),
                    Creator(Keypair().pubkey(), 90),
                    Creator(Keypair().pubkey(), 10),
                ),
            ),
            creator_signer=authority,
        )
    ]


def missing_name_uri(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            NftJobSpec(
                display_name="NFT with missing name / URI",
                name="",
                uri="",
                token_owner=destination,
            )
        )
    ]


def long_description(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            simple_spec(
                "NFT with extra-long description",
                destination,
                metadata_json={"description": LONG_DESCRIPTION},
            )
        )
    ]


def mismatched_names(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            NftJobSpec(
                display_name="NFT with mismatched names",
                metadata_json={"name": "This name shouldn't be displayed"},
                name="This name should be displayed",
                token_owner=destination,
            )
        )
    ]


def animations(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    glb = simple_spec(
        "NFT with GLB animation",
        destination,
        metadata_json={
            "image": GLB_IMAGE,
            "animation_url": GLB_ANIMATION,
            "properties": {"category": "vr"},
        },
    )
    gif = simple_spec(
        "NFT with GIF animation",
        destination,
        metadata_json={
            "image": GIF_IMAGE,
            "properties": {
                "category": "image",
                "files": [{"type": "image/gif", "uri": GIF_IMAGE}],
            },
        },
    )
    mp4 = simple_spec(
        "NFT with mp4 animation",
        destination,
        metadata_json={
            "animation_url": MP4_ANIMATION,
            "properties": {
                "category": "video",
                "files": [{"type": "video/mp4", "uri": MP4_ANIMATION}],
            },
        },
    )
    return [NftJob(glb), NftJob(gif), NftJob(mp4)]


def immutable(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [NftJob(simple_spec("Immutable NFT", destination, is_mutable=False))]


def limited_edition(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            simple_spec("Master Edition NFT w/ 5 supply", destination, max_supply=5),
            print_edition=True,
        )
    ]


def own_creator(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    # The "verified" variant is never signed: only the destination could sign it.
    own = (Creator(destination, 100),)
    return [
        NftJob(
            simple_spec(
                "NFT with own unverified creator",
                destination,
                metadata_json={
                    "image": "https://www.arweave.net/b_6b9H7Ec_pANaz0394OQI7TRoL0_K1Knlrsk_039rc?ext=png"
                },
                creators=own,
            )
        ),
        NftJob(
            simple_spec(
                "NFT with own verified creator",
                destination,
                metadata_json={
                    "image": "https://www.arweave.net/b2Ufl38QpZWWE16a6d3q-ZldyeSDJAuJPgRBdh6vSkM?ext=jpeg"
                },
                creators=own,
            )
        ),
    ]


def happy_case(destination: Pubkey, context: NetworkContext) -> List[NftJob]:
    return [
        NftJob(
            simple_spec(
                "Happy Case!",
                destination,
                metadata_json={
                    "description": (
                        "As the Orca ecosystem has grown, new creatures have been sighted "
                        "emerging from deep within. 10,000 unique Orcanauts are now roaming "
                        "free! Just like our podmates, each one of these little explorers is "
                        "unique and it's looking for a forever friend with whom to navigate "
                        "the deep sea of DeFi."
                    ),
                    "image": "https://www.arweave.net/N9p7kt8EuHriN_B-teb_JH5WKWEsZ1gB9HbZGUTO6D8?ext=png",
                },
                creators=(Creator(HAPPY_CASE_CREATOR, 100),),
                collection=CollectionRef(HAPPY_CASE_COLLECTION, verify=True),
            )
        )
    ]


CASES: Dict[str, CaseEntry] = {
    "no-image": no_image,
    "collection": collection,
    "unverified-creator": unverified_creator,
    "verified-creator": verified_creator,
    "candy-machine-creator": candy_machine_creator,
    "missing-name-uri": missing_name_uri,
    "long-description": long_description,
    "mismatched-names": mismatched_names,
    "animations": animations,
    "immutable": immutable,
    "limited-edition": limited_edition,
    "own-creator": own_creator,
    "happy-case": happy_case,
}


def catalogue(
    destination: Pubkey,
    context: NetworkContext,
    case_ids: Optional[Sequence[str]] = None,
) -> List[NftJob]:
    """Build the jobs for ``case_ids`` (every case when omitted), in order.

    :raises UnknownCase: If an id is not in :data:`CASES`.
    """
    if case_ids is None:
        case_ids = list(CASES)
    for case_id in case_ids:
        if case_id not in CASES:
            raise UnknownCase(case_id)
    jobs: List[NftJob] = []
    for case_id in case_ids:
        jobs.extend(CASES[case_id](destination, context))
    return jobs


class Test(unittest.TestCase):
    EXPECTED_COUNTS = {
        "no-image": 1,
        "collection": 3,
        "unverified-creator": 1,
        "verified-creator": 1,
        "candy-machine-creator": 1,
        "missing-name-uri": 1,
        "long-description": 1,
        "mismatched-names": 1,
        "animations": 3,
        "immutable": 1,
        "limited-edition": 1,
        "own-creator": 2,
        "happy-case": 1,
    }

    def setUp(self):
        self.destination = Keypair().pubkey()
        self.context = NetworkContext(Keypair(), "http://localhost:8899", "/tmp/id.json")

    def test_every_case_count_and_owner(self):
        self.assertEqual(list(CASES), list(self.EXPECTED_COUNTS))
        for case_id, count in self.EXPECTED_COUNTS.items():
            jobs = catalogue(self.destination, self.context, [case_id])
            self.assertEqual(len(jobs), count, case_id)
            for job in jobs:
                self.assertEqual(job.spec.token_owner, self.destination, job.display_name)

    def test_full_catalogue(self):
        jobs = catalogue(self.destination, self.context)
        self.assertEqual(len(jobs), sum(self.EXPECTED_COUNTS.values()))
        names = [job.display_name for job in jobs]
        self.assertEqual(len(names), len(set(names)))

    def test_unknown_case(self):
        with self.assertRaises(UnknownCase):
            catalogue(self.destination, self.context, ["no-image", "nope"])

    def test_own_creator(self):
        jobs = catalogue(self.destination, self.context, ["own-creator"])
        self.assertEqual(len(jobs), 2)
        for job in jobs:
            self.assertEqual(job.spec.creators, (Creator(self.destination, 100),))
            self.assertIsNone(job.creator_signer)

    def test_collection_members_reference_collection_job(self):
        (parent, unverified, verified) = catalogue(
            self.destination, self.context, ["collection"]
        )
        self.assertIs(unverified.collection_job, parent)
        self.assertIs(verified.collection_job, parent)
        self.assertTrue(parent.spec.is_collection)
        self.assertFalse(unverified.spec.is_collection)
        self.assertFalse(verified.spec.is_collection)
        self.assertFalse(unverified.verify_collection)
        self.assertTrue(verified.verify_collection)

    def test_candy_machine_authority_signs(self):
        (job,) = catalogue(self.destination, self.context, ["candy-machine-creator"])
        self.assertEqual([creator.share for creator in job.spec.creators], [0, 90, 10])
        self.assertEqual(job.creator_signer.pubkey(), job.spec.creators[0].address)

    def test_degenerate_specs(self):
        (missing,) = catalogue(self.destination, self.context, ["missing-name-uri"])
        self.assertEqual((missing.spec.name, missing.spec.uri), ("", ""))

        (mismatch,) = catalogue(self.destination, self.context, ["mismatched-names"])
        self.assertNotEqual(mismatch.spec.name, mismatch.spec.metadata_json["name"])

        (long,) = catalogue(self.destination, self.context, ["long-description"])
        self.assertGreater(len(long.spec.metadata_json["description"]), 5000)

        (immutable_job,) = catalogue(self.destination, self.context, ["immutable"])
        self.assertFalse(immutable_job.spec.is_mutable)

        (edition,) = catalogue(self.destination, self.context, ["limited-edition"])
        self.assertEqual(edition.spec.max_supply, 5)
        self.assertTrue(edition.print_edition)

    def test_animation_categories(self):
        jobs = catalogue(self.destination, self.context, ["animations"])
        categories = [job.spec.metadata_json["properties"]["category"] for job in jobs]
        self.assertEqual(categories, ["vr", "image", "video"])
        self.assertTrue(jobs[0].spec.metadata_json["animation_url"].endswith("ext=glb"))
        self.assertEqual(
            jobs[2].spec.metadata_json["properties"]["files"][0]["type"], "video/mp4"
        )


if __name__ == "__main__":
    unittest.main()
