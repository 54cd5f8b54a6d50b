import unittest

from token_admission_bundle.admission import address_validator as av

from tests.fakes import EVM_ADDR, SOL_ADDR


class CanonicalNetworkTests(unittest.TestCase):
    def test_synonyms_fold_to_canonical(self):
        self.assertEqual(av.canonical_network("ETH"), "ethereum")
        self.assertEqual(av.canonical_network("binance-smart-chain"), "bsc")
        self.assertEqual(av.canonical_network("polygon-pos"), "polygon")
        self.assertEqual(av.canonical_network(" sol "), "solana")

    def test_unknown_network_passes_through_lowercased(self):
        self.assertEqual(av.canonical_network("Hyperliquid"), "hyperliquid")

    def test_bittensor_has_no_dex_chain(self):
        self.assertIsNone(av.dex_chain_id("bittensor"))
        self.assertEqual(av.dex_chain_id("arb"), "arbitrum")


class ValidateTests(unittest.TestCase):
    def test_evm_family(self):
        self.assertTrue(av.validate(EVM_ADDR, "ethereum"))
        self.assertTrue(av.validate(EVM_ADDR, "bnb"))
        self.assertFalse(av.validate("0x1234", "ethereum"))
        self.assertFalse(av.validate(SOL_ADDR, "base"))

    def test_base58_family(self):
        self.assertTrue(av.validate(SOL_ADDR, "solana"))
        self.assertFalse(av.validate(EVM_ADDR, "solana"))
        # 0, O, I and l are not base58
        self.assertFalse(av.validate("0" * 40, "sui"))

    def test_bittensor_subnet_ids(self):
        self.assertTrue(av.validate("19", "bittensor"))
        self.assertFalse(av.validate("-1", "bittensor"))
        self.assertFalse(av.validate(EVM_ADDR, "bittensor"))

    def test_unknown_network_accepts_any_family(self):
        with self.assertLogs("TokenAdmission", level="WARNING"):
            self.assertTrue(av.validate(EVM_ADDR, "hyperliquid"))
        with self.assertLogs("TokenAdmission", level="WARNING"):
            self.assertFalse(av.validate("not an address", "hyperliquid"))

    def test_native_bypasses_format(self):
        self.assertTrue(av.validate("native:bitcoin", "other"))
        self.assertTrue(av.is_native("native:bitcoin"))
        self.assertEqual(av.native_id("native:bitcoin"), "bitcoin")

    def test_missing_inputs(self):
        self.assertFalse(av.validate("", "ethereum"))
        self.assertFalse(av.validate(EVM_ADDR, ""))


class NormalizeTests(unittest.TestCase):
    def test_evm_lowercased_and_idempotent(self):
        samples = [
            EVM_ADDR,
            "0xABCDEFABCDEFABCDEFABCDEFABCDEFABCDEFABCD",
            "0x00000000000000000000000000000000000000aA",
        ]
        for a in samples:
            once = av.normalize(a, "ethereum")
            self.assertEqual(once, a.lower())
            self.assertEqual(av.normalize(once, "ethereum"), once)

    def test_base58_case_preserved(self):
        self.assertEqual(av.normalize(SOL_ADDR, "solana"), SOL_ADDR)

    def test_native_unchanged(self):
        self.assertEqual(av.normalize("native:Bitcoin", "other"), "native:Bitcoin")

    def test_looks_like_contract_address(self):
        self.assertTrue(av.looks_like_contract_address(EVM_ADDR))
        self.assertTrue(av.looks_like_contract_address(SOL_ADDR))
        self.assertFalse(av.looks_like_contract_address("bittensor"))


if __name__ == "__main__":
    unittest.main()
