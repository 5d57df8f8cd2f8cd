# =============================================================================
# Catalog Vocabulary — Fixed Value Lists Quoted in Query-Agent Prompts
# =============================================================================
#
# The evidence views store categorical columns as free text. A model that
# writes WHERE "sector" = 'Tech' gets zero rows, so every prompt quotes the
# exact spelling the data platform uses. These lists mirror the catalog and
# change only when the catalog does.
# =============================================================================

STANDARD_SECTORS = (
    "Real Estate",
    "Healthcare",
    "Energy",
    "Utilities",
    "Consumer Defensive",
    "Financial Services",
    "Communication Services",
    "Basic Materials",
    "Industrials",
    "Consumer Cyclical",
    "Technology",
)

STOCK_INDUSTRIES = (
    "Electronics Distributors", "Cable", "Cable Or Satellite TV", "Motor Vehicles",
    "Personnel Services", "Discount Stores", "Specialty Telecommunications",
    "Internet Retail", "Publishing Books Or Magazines", "Drugstore Chains",
    "Electronic Production Equipment", "Data Processing Services", "Coal",
    "Oilfield Services Or Equipment", "Apparel Or Footwear", "Financial Conglomerates",
    "Electronics Or Appliance Stores", "Forest Products",
    "Electronic Equipment Or Instruments", "Construction Materials",
    "Managed Health Care", "Food Major Diversified", "Tools And Hardware", "Major Banks",
    "Hotels Or Resorts Or Cruiselines", "Life Or Health Insurance",
    "Industrial Specialties", "Household Or Personal Care", "Other Metals Or Minerals",
    "Finance Or Rental Or Leasing", "Department Stores", "Beverages Non Alcoholic",
    "Engineering And Construction", "Textiles", "Automotive Aftermarket",
    "Telecommunications Equipment", "Steel", "Metal Fabrication", "Food Distributors",
    "Home Furnishings", "Real Estate Investment Trusts", "Medical Distributors",
    "Homebuilding", "Oil And Gas Pipelines", "Recreational Products",
    "Miscellaneous Commercial Services", "Integrated Oil", "Gas Distributors",
    "Aerospace And Defense", "Tobacco", "Investment Managers", "Contract Drilling",
    "Food Meat Or Fish Or Dairy", "Media Conglomerates", "Medical Specialties",
    "Aluminum", "Air Freight Or Couriers", "Packaged Software",
    "Insurance Brokers Or Services", "Marine Shipping", "Other Consumer Services",
    "Consumer Sundries", "Savings Banks", "Water Utilities", "Oil Refining Or Marketing",
    "Miscellaneous Manufacturing", "Industrial Conglomerates", "Electric Utilities",
    "Computer Communications", "Chemicals Specialty", "Apparel Or Footwear Retail",
    "Electronic Components", "Servicestothe Health Industry",
    "Investment Trusts Or Mutual Funds", "Property Or Casualty Insurance",
    "Agricultural Commodities Or Milling", "Auto Parts OEM", "Pharmaceuticals Generic",
    "Multi Line Insurance", "Wholesale Distributors", "Broadcasting",
    "Pharmaceuticals Major", "General Government", "Hospital Or Nursing Management",
    "Food Specialty Or Candy", "Real Estate Development", "Oil And Gas Production",
    "Electrical Products", "Railroads", "Precious Metals", "Commercial Printing Or Forms",
    "Pulp And Paper", "Internet Software Or Services", "Regional Banks",
    "Major Telecommunications", "Pharmaceuticals Other", "Industrial Machinery",
    "Office Equipment Or Supplies", "Wireless Telecommunications",
    "Containers Or Packaging", "Miscellaneous", "Casinos Or Gaming", "Restaurants",
    "Computer Peripherals", "Chemicals Agricultural", "Airlines", "Trucking",
    "Specialty Insurance", "Biotechnology", "Advertising Or Marketing Services",
    "Financial Publishing Or Services", "Building Products",
    "Computer Processing Hardware", "Other Consumer Specialties", "Home Improvement Chains",
    "Trucks Or Construction Or Farm Machinery", "Alternative Power Generation",
    "Specialty Stores", "Food Retail", "Medical Or Nursing Services",
    "Investment Banks Or Brokers", "Electronics Or Appliances", "Other Transportation",
    "Information Technology Services", "Publishing Newspapers", "Environmental Services",
    "Semiconductors", "Movies Or Entertainment", "Chemicals Major Diversified",
    "Beverages Alcoholic",
)

ETF_ASSET_CLASSES = (
    "Commodities", "Bond", "Inverse", "Real Estate", "Diversified", "Equity",
    "Alternative", "Other",
)

ETF_REGIONS = (
    "World", "Asia Emerging", "United Kingdom", "Asia Developed", "Australasia",
    "North America", "Africa/Middle East", "Latin America", "Japan", "Europe Emerging",
    "Europe Developed",
)

ETF_SEGMENTS = (
    "Financial", "Sector Equity Utilities", "Japan Stock", "USD Corporate Bond - Short Term",
    "Digital Assets", "Defined Outcome", "Intermediate Core-Plus Bond",
    "Property - Indirect Europe", "USD High Yield Bond", "Trading - Leveraged/Inverse Equity",
    "Other", "RMB Bond - Onshore", "Mid-Cap Value", "Latin America Stock",
    "Europe ex-UK Equity", "Infrastructure", "Latin America Equity",
    "Property - Indirect Global", "Energy Limited Partnership",
    "Europe Large-Cap Blend Equity", "Technology", "Moderately Conservative Allocation",
    "Japan Large-Cap Equity", "Eurozone Large-Cap Equity", "Equity Energy",
    "Sector Equity Alternative Energy", "Utilities", "Commodities - Energy",
    "Preferred Stock", "Global Large-Cap Value Equity", "Global Large-Cap Blend Equity",
    "Commodities Broad Basket", "Global Corporate Bond", "Sector Equity Infrastructure",
    "Other Equity", "Global Emerging Markets Bond - Local Currency", "Short-Term Bond",
    "Global Bond", "China Equity", "EUR High Yield Bond", "Global Real Estate",
    "Global Emerging Markets Corporate Bond", "Trading--Inverse Debt",
    "Commodities - Industrial & Broad Metals", "Inflation-Protected Bond",
    "France Equity", "Equity Precious Metals", "US Flex-Cap Equity", "Fixed Term Bond",
    "Sector Equity Healthcare", "Global Government Bond", "Ultrashort Bond",
    "Vietnam Equity", "EUR Ultra Short-Term Bond", "Global High Yield Bond",
    "Europe Stock", "Miscellaneous Sector", "Mid-Cap Blend", "Small Growth",
    "Other Bond", "Sector Equity Energy", "Commodities - Other", "Intermediate Government",
    "UK Large-Cap Equity", "Global Bond-USD Hedged", "Convertibles",
    "Asia Bond - Local Currency", "Long Government", "Trading--Leveraged Commodities",
    "Health", "Miscellaneous Region", "High Yield Muni", "Emerging Markets Bond",
    "US Small-Cap Equity", "Mid-Cap Growth", "Global Flex-Cap Equity",
    "EUR Corporate Bond", "Foreign Large Value", "Short Government",
    "Money Market - Other", "Industrials", "Global Emerging Markets Bond",
    "Short-Term Inflation-Protected Bond", "Sector Equity Water",
    "Diversified Emerging Mkts", "USD Government Bond", "Pacific ex-Japan Equity",
    "Trading--Inverse Equity", "Real Estate", "Korea Equity", "Netherlands Equity",
    "Sector Equity Natural Resources", "Sector Equity Financial Services",
    "USD Corporate Bond", "Brazil Equity", "Moderate Allocation", "Consumer Defensive",
    "Pacific/Asia ex-Japan Stk", "EUR Government Bond", "Australia & New Zealand Equity",
    "Global Small/Mid-Cap Equity", "Small Value", "EUR Inflation-Linked Bond",
    "EUR Corporate Bond - Short Term", "Alternative Other", "Eurozone Mid-Cap Equity",
    "Global Corporate Bond - EUR Hedged", "USD Ultra Short-Term Bond", "Consumer Cyclical",
    "USD Inflation-Linked Bond", "Global Emerging Markets Equity", "GBP Government Bond",
    "US Equity Income", "Long-Short Equity", "High Yield Bond", "US Large-Cap Blend Equity",
    "Global Equity Income", "Nontraditional Bond", "EUR Bond - Long Term",
    "Commodities - Broad Basket", "EUR Flexible Bond", "Global Small/Mid Stock",
    "Asia-Pacific Equity", "Trading--Inverse Commodities", "USD Moderate Allocation",
    "US Large-Cap Growth Equity", "China Equity - A Shares", "Trading--Miscellaneous",
    "Event Driven", "Bank Loan", "Intermediate Core Bond", "Sector Equity Private Equity",
    "Large Blend", "Target Maturity", "Europe Large-Cap Value Equity",
    "Foreign Large Growth", "Trading--Leveraged Debt", "Natural Resources",
    "USD Diversified Bond", "Global Diversified Bond - EUR Hedged",
    "Sector Equity Agriculture", "US Mid-Cap Equity", "Diversified Pacific/Asia",
    "Italy Equity", "China Region", "Foreign Large Blend", "Canada Equity", "Small Blend",
    "Global Large-Stock Blend", "Sector Equity Consumer Goods & Services", "Large Value",
    "Muni National Interm", "Muni National Long", "Trading--Leveraged Equity",
    "Communications", "USD Government Bond - Short Term", "Large Growth",
    "Property - Indirect Other", "Taiwan Large-Cap Equity", "Commodities Focused",
    "UK Mid-Cap Equity", "Global Allocation", "Sector Equity Technology",
    "Commodities - Precious Metals", "India Equity", "Global Large-Cap Growth Equity",
    "Sector Equity Precious Metals", "Asia ex-Japan Equity", "Derivative Income",
    "Corporate Bond", "Foreign Small/Mid Blend", "Long-Term Bond",
    "US Large-Cap Value Equity", "Muni National Short",
)

INVESTOR_ASSET_TYPES = ("ETFs", "Commodities", "Stocks", "Indices", "Currencies", "Crypto")

DIVIDEND_FREQUENCIES = ("Quarterly", "Semiannual", "Annual", "Other")


def quoted(values) -> str:
    """'A', 'B', 'C' for pasting a value list into prompt text."""
    return ", ".join(f"'{value}'" for value in values)
